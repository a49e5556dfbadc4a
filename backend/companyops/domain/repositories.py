from __future__ import annotations

import copy
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from django.db.models import QuerySet

from companyops.domain.errors import Forbidden, NotFound
from companyops.domain.models import (
    ACTIVE_RECOMMENDATION_STATUSES,
    ACTIVE_REQUEST_STATUSES,
    CQRosterEntry,
    LibertyRequest,
    Personnel,
    RequestStatus,
    ScheduleEntry,
    ScheduleSkip,
    ScheduleStatus,
    SettingsDocument,
    SettingsKey,
    SwapRequest,
    WeatherRecommendation,
)
from companyops.utils import _get_setting

DEFAULT_TIMEZONE = "America/New_York"

# ==========================================================
# Settings documents
# ==========================================================

def _settings_defaults() -> Dict[str, Dict[str, Any]]:
    return {
        SettingsKey.APP_CONFIG: {
            "timezone": _get_setting("TIME_ZONE", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE,
            "cqShift1Start": _get_setting("CQ_SHIFT1_START", "20:00"),
            "cqShift1End": _get_setting("CQ_SHIFT1_END", "01:00"),
            "cqShift2Start": _get_setting("CQ_SHIFT2_START", "01:00"),
            "cqShift2End": _get_setting("CQ_SHIFT2_END", "06:00"),
            "libertyDeadlineDayOfWeek": _get_setting("LIBERTY_DEADLINE_DAY", 2),
            "libertyDeadlineTime": _get_setting("LIBERTY_DEADLINE_TIME", "23:59"),
        },
        SettingsKey.WEATHER_RULES: {"rules": [], "defaultUniformId": None},
        SettingsKey.WEATHER_LOCATION: {"coordinates": None, "units": "imperial"},
        SettingsKey.WEATHER_CACHE: {},
        SettingsKey.UOTD_SCHEDULE: {"slots": {}},
    }


class SettingsRepository:
    """Read/write the admin-editable settings documents.

    This is the only place defaults are applied: callers always get a fully
    populated mapping and never need ``.get(key) or default`` at the call site.
    """

    @classmethod
    def defaults(cls, key: str) -> Dict[str, Any]:
        return copy.deepcopy(_settings_defaults().get(key, {}))

    @classmethod
    def exists(cls, key: str) -> bool:
        return SettingsDocument.objects.filter(key=key).exists()

    @classmethod
    def get(cls, key: str) -> Dict[str, Any]:
        """Return the stored document merged over its defaults.

        Args:
            key (str): One of SettingsKey.

        Returns:
            Dict[str, Any]: The effective document.
        """
        data = cls.defaults(key)
        doc = SettingsDocument.objects.filter(key=key).first()
        if doc and isinstance(doc.data, dict):
            data.update({k: v for k, v in doc.data.items() if v is not None})
        return data

    @classmethod
    def put(cls, key: str, data: Dict[str, Any], merge: bool = True) -> Dict[str, Any]:
        """Store a document, merging into the current one unless ``merge`` is False."""
        doc, _ = SettingsDocument.objects.get_or_create(key=key, defaults={"data": {}})
        doc.data = {**(doc.data or {}), **data} if merge else dict(data)
        doc.save(update_fields=["data", "updated_at"])
        return cls.get(key)

    @classmethod
    def app_config(cls) -> Dict[str, Any]:
        return cls.get(SettingsKey.APP_CONFIG)

# ==========================================================
# Personnel
# ==========================================================

class PersonnelRepository:
    """Lookups for Personnel."""

    @classmethod
    def get(cls, personnel_id: int) -> Personnel:
        try:
            return Personnel.objects.select_related("user").get(pk=personnel_id)
        except (Personnel.DoesNotExist, ValueError, TypeError):
            raise NotFound("Personnel not found", personnel_id=personnel_id)

    @classmethod
    def find(cls, personnel_id: Optional[int]) -> Optional[Personnel]:
        if not personnel_id:
            return None
        return Personnel.objects.select_related("user").filter(pk=personnel_id).first()

    @classmethod
    def for_user(cls, user) -> Personnel:
        """Return the personnel record linked to an auth user.

        Raises:
            Forbidden: The account has no linked personnel record.
        """
        if user is None or not getattr(user, "is_authenticated", False):
            raise Forbidden("Must be logged in")
        person = Personnel.objects.select_related("user").filter(user=user).first()
        if person is None:
            raise Forbidden("No personnel record is linked to this account")
        return person

    @classmethod
    def actives(cls) -> QuerySet[Personnel]:
        return Personnel.objects.filter(active=True).order_by("last_name", "first_name")

    @classmethod
    def with_roles(cls, roles: Iterable[str]) -> QuerySet[Personnel]:
        return Personnel.objects.filter(role__in=list(roles), active=True).order_by("pk")

    @classmethod
    def by_name(cls, name: str) -> Optional[Personnel]:
        """Best-effort match of an imported display name ('First Last') to a record."""
        name = (name or "").strip()
        if not name:
            return None
        parts = name.split()
        if len(parts) >= 2:
            hit = Personnel.objects.filter(
                first_name__iexact=parts[0], last_name__iexact=" ".join(parts[1:])
            ).first()
            if hit:
                return hit
        return Personnel.objects.filter(last_name__iexact=parts[-1]).first() if len(parts) == 1 else None

# ==========================================================
# CQ schedule
# ==========================================================

class ScheduleRepository:
    """Queries over the CQ schedule, skips and roster."""

    @classmethod
    def get(cls, schedule_id: int) -> ScheduleEntry:
        try:
            return ScheduleEntry.objects.get(pk=schedule_id)
        except (ScheduleEntry.DoesNotExist, ValueError, TypeError):
            raise NotFound("Schedule not found", schedule_id=schedule_id)

    @classmethod
    def for_date(cls, d: date) -> Optional[ScheduleEntry]:
        return ScheduleEntry.objects.filter(date=d).first()

    @classmethod
    def open_for_dates(cls, dates: Iterable[date]) -> Dict[date, ScheduleEntry]:
        """Scheduled or active entries for the given dates, keyed by date."""
        qs = ScheduleEntry.objects.filter(
            date__in=list(dates),
            status__in=[ScheduleStatus.SCHEDULED, ScheduleStatus.ACTIVE],
        )
        return {e.date: e for e in qs}

    @classmethod
    def between(cls, start: Optional[date] = None, end: Optional[date] = None) -> QuerySet[ScheduleEntry]:
        qs = ScheduleEntry.objects.all()
        if start:
            qs = qs.filter(date__gte=start)
        if end:
            qs = qs.filter(date__lte=end)
        return qs.order_by("date")

    @classmethod
    def scheduled_after(cls, d: date) -> QuerySet[ScheduleEntry]:
        return ScheduleEntry.objects.filter(date__gt=d, status=ScheduleStatus.SCHEDULED).order_by("date")

    @classmethod
    def skipped_dates(cls) -> set:
        return set(ScheduleSkip.objects.values_list("date", flat=True))

    @classmethod
    def roster_nights(cls) -> List[Dict[str, Dict[int, CQRosterEntry]]]:
        """Roster grouped by ``order``: one mapping {shift_type: {position: entry}} per night."""
        nights: Dict[int, Dict[str, Dict[int, CQRosterEntry]]] = {}
        for entry in CQRosterEntry.objects.select_related("personnel").order_by("order", "shift_type", "position"):
            nights.setdefault(entry.order, {}).setdefault(entry.shift_type, {})[entry.position] = entry
        return [nights[k] for k in sorted(nights)]

# ==========================================================
# Swap requests
# ==========================================================

class SwapRequestRepository:

    @classmethod
    def get(cls, swap_id: int, for_update: bool = False) -> SwapRequest:
        qs = SwapRequest.objects.select_related("schedule", "requester")
        if for_update:
            qs = qs.select_for_update(of=("self",))
        try:
            return qs.get(pk=swap_id)
        except (SwapRequest.DoesNotExist, ValueError, TypeError):
            raise NotFound("Request not found", swap_id=swap_id)

    @classmethod
    def pending(cls) -> QuerySet[SwapRequest]:
        return SwapRequest.objects.filter(status=RequestStatus.PENDING).order_by("created_at")

    @classmethod
    def pending_count(cls) -> int:
        return cls.pending().count()

    @classmethod
    def for_requester(cls, person: Personnel) -> QuerySet[SwapRequest]:
        return SwapRequest.objects.filter(requester=person).order_by("-created_at")

    @classmethod
    def pending_for_slot(cls, schedule: ScheduleEntry, shift_type: str, position: int) -> QuerySet[SwapRequest]:
        return SwapRequest.objects.filter(
            schedule=schedule,
            current_shift_type=shift_type,
            current_position=position,
            status=RequestStatus.PENDING,
        )

# ==========================================================
# Liberty requests
# ==========================================================

class LibertyRequestRepository:

    @classmethod
    def get(cls, request_id: int, for_update: bool = False) -> LibertyRequest:
        qs = LibertyRequest.objects.all()
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=request_id)
        except (LibertyRequest.DoesNotExist, ValueError, TypeError):
            raise NotFound("Request not found", request_id=request_id)

    @classmethod
    def active_for_weekend(cls, requester: Personnel, weekend_date: date) -> Optional[LibertyRequest]:
        """The requester's pending or approved request for a weekend, if any."""
        return (
            LibertyRequest.objects
            .filter(requester=requester, weekend_date=weekend_date, status__in=ACTIVE_REQUEST_STATUSES)
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def pending(cls) -> QuerySet[LibertyRequest]:
        return LibertyRequest.objects.filter(status=RequestStatus.PENDING).order_by("created_at")

    @classmethod
    def pending_count(cls) -> int:
        return cls.pending().count()

    @classmethod
    def for_requester(cls, person: Personnel) -> QuerySet[LibertyRequest]:
        return LibertyRequest.objects.filter(requester=person).order_by("-created_at")

    @classmethod
    def approved_for_weekend(cls, weekend_date: date) -> QuerySet[LibertyRequest]:
        return (
            LibertyRequest.objects
            .filter(weekend_date=weekend_date, status=RequestStatus.APPROVED)
            .order_by("requester_name")
        )

    @classmethod
    def joinable(cls, person: Personnel, weekend_date: Optional[date] = None) -> QuerySet[LibertyRequest]:
        """Other people's pending or approved requests that ``person`` could join."""
        qs = LibertyRequest.objects.filter(status__in=ACTIVE_REQUEST_STATUSES).exclude(requester=person)
        if weekend_date:
            qs = qs.filter(weekend_date=weekend_date)
        return qs.order_by("weekend_date", "created_at")

# ==========================================================
# Weather recommendations
# ==========================================================

class RecommendationRepository:

    @classmethod
    def get(cls, rec_id: int, for_update: bool = False) -> WeatherRecommendation:
        qs = WeatherRecommendation.objects.all()
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=rec_id)
        except (WeatherRecommendation.DoesNotExist, ValueError, TypeError):
            raise NotFound("Recommendation not found", recommendation_id=rec_id)

    @classmethod
    def active_for_slot(cls, target_date: date, target_slot: str, for_update: bool = False) -> Optional[WeatherRecommendation]:
        qs = WeatherRecommendation.objects.filter(
            target_date=target_date, target_slot=target_slot, status__in=ACTIVE_RECOMMENDATION_STATUSES
        )
        if for_update:
            qs = qs.select_for_update()
        return qs.first()

    @classmethod
    def pending(cls) -> QuerySet[WeatherRecommendation]:
        return WeatherRecommendation.objects.filter(status="pending").order_by("-created_at")

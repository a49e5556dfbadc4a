from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from django.db import transaction
from django.utils import timezone

from companyops.domain.errors import (
    CapacityExceeded,
    DomainError,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from companyops.domain.forms import LibertyRequestForm
from companyops.domain.models import (
    ACTIVE_REQUEST_STATUSES,
    LIBERTY_LOCATIONS,
    JoinStatus,
    LibertyRequest,
    Personnel,
    RequestStatus,
)
from companyops.domain.repositories import LibertyRequestRepository, SettingsRepository
from companyops.domain.roles import Permission, actor_has, require_permission
from companyops.services import timezone as tz
from companyops.utils import _parse_hhmm, _parse_iso_date

log = logging.getLogger(__name__)

LOCATION_LABELS = dict(LIBERTY_LOCATIONS)
SUPERSEDED_REASON = "Replaced with new request"
DUPLICATE_MESSAGE = "You already have a pending liberty request for this weekend"

# ==========================================================
# Display helpers
# ==========================================================

def build_destination_string(locations: Optional[Iterable[str]], custom_location: Optional[str] = None) -> str:
    """Join the human labels of the chosen locations.

    Args:
        locations (Optional[Iterable[str]]): Location values, e.g. ``["gym", "other"]``.
        custom_location (Optional[str], optional): Replaces the "Other" label when given.

    Returns:
        str: e.g. ``"Gym, Mall"``; empty when nothing was chosen.
    """
    labels = []
    for loc in locations or []:
        if loc == "other":
            labels.append(custom_location or "Other")
        else:
            labels.append(LOCATION_LABELS.get(loc, loc))
    return ", ".join(label for label in labels if label)


def _slot_locations(time_slots: Iterable[Mapping[str, Any]]) -> List[str]:
    return list(dict.fromkeys(loc for slot in time_slots for loc in slot.get("locations") or []))


def build_time_slots_destination(time_slots: Optional[List[Mapping[str, Any]]], custom_location: Optional[str] = None) -> str:
    if not time_slots:
        return ""
    return build_destination_string(_slot_locations(time_slots), custom_location)


def time_slot_label(slot: Optional[Mapping[str, Any]]) -> str:
    """Short label for a slot dict, e.g. 'Sat Morning' or 'Sun Evening'."""
    if not slot or not slot.get("date"):
        return ""
    day = _parse_iso_date(slot["date"])
    start = slot.get("start_time")
    hour = _parse_hhmm(start).hour if start else 0
    if hour < 12:
        period = "Morning"
    elif hour < 17:
        period = "Afternoon"
    else:
        period = "Evening"
    return f"{day.strftime('%a')} {period}"


def approver_initials(person: Optional[Personnel], display_name: str = "") -> str:
    """First letter of first and last name, from the personnel record when it has them."""
    first = last = ""
    if person is not None:
        first, last = person.first_name or "", person.last_name or ""
    if not first and not last and display_name:
        parts = display_name.split()
        first = parts[0] if parts else ""
        last = " ".join(parts[1:])
    return (first[:1] + last[:1]).upper()


def _now_iso() -> str:
    return timezone.now().isoformat()

# ==========================================================
# Input shaping
# ==========================================================

def _clean(data: Mapping[str, Any]) -> Dict[str, Any]:
    form = LibertyRequestForm(data=data)
    if not form.is_valid():
        raise ValidationError.from_form(form)
    return form.cleaned_data


def _check_people(cd: Mapping[str, Any], requester: Personnel) -> None:
    if any(c["id"] == requester.pk for c in cd["companions"]):
        raise ValidationError({"companions": ["You cannot list yourself as a companion."]})
    for slot in cd["time_slots"]:
        participants = slot["participants"]
        if any(p["id"] == requester.pk for p in participants):
            raise ValidationError({"time_slots": ["The requester cannot be a participant of their own slot."]})
        if cd["is_driver"] and len(participants) > cd["passenger_capacity"]:
            raise CapacityExceeded("A time slot has more participants than available seats")


def _request_fields(cd: Mapping[str, Any]) -> Dict[str, Any]:
    """Model fields derived from cleaned input; destination and legacy window from the slots."""
    slots = cd["time_slots"]
    custom = cd.get("custom_location")
    if slots:
        locations = _slot_locations(slots)
        destination = build_time_slots_destination(slots, custom)
        first, last = slots[0], slots[-1]
        window = {
            "departure_date": _parse_iso_date(first["date"]),
            "departure_time": _parse_hhmm(first["start_time"]),
            "return_date": _parse_iso_date(last["date"]),
            "return_time": _parse_hhmm(last["end_time"]),
        }
    else:
        locations = cd["locations"]
        destination = build_destination_string(locations, custom)
        window = {"departure_date": None, "departure_time": None, "return_date": None, "return_time": None}
    return {
        "locations": locations,
        "custom_location": custom,
        "destination": destination,
        "contact_number": cd.get("contact_number") or None,
        "purpose": cd.get("purpose") or None,
        "notes": cd.get("notes") or None,
        "companions": cd["companions"],
        "is_driver": bool(cd.get("is_driver")),
        "passenger_capacity": cd["passenger_capacity"],
        "time_slots": slots,
        **window,
    }


def _stamp_approval(req: LibertyRequest, actor: Personnel) -> None:
    req.status = RequestStatus.APPROVED
    req.approved_by = actor
    req.approved_by_name = actor.display_name
    req.approver_initials = approver_initials(actor, actor.display_name)
    req.approved_at = timezone.now()

# ==========================================================
# Create / update / cancel
# ==========================================================

def create_liberty_request(data: Mapping[str, Any], requester: Personnel) -> Dict[str, Any]:
    """Submit a weekend liberty request.

    A second active request for the same weekend is refused with a duplicate
    signal unless ``force_submit`` is set, in which case the old one is
    cancelled in the same transaction as the insert.

    Args:
        data (Mapping[str, Any]): LibertyRequestForm fields.
        requester (Personnel): The person going out.

    Returns:
        Dict[str, Any]: ``{"success": True, "request": obj}`` or
        ``{"success": False, "isDuplicate": True, "existingRequest": obj, "message": ...}``.
    """
    cd = _clean(data)
    _check_people(cd, requester)
    weekend = cd["weekend_date"]

    with transaction.atomic():
        # lock the requester row so two submissions for one weekend serialize
        Personnel.objects.select_for_update().filter(pk=requester.pk).first()
        existing = LibertyRequestRepository.active_for_weekend(requester, weekend)
        if existing is not None and not cd.get("force_submit"):
            return {
                "success": False,
                "isDuplicate": True,
                "existingRequest": existing,
                "message": DUPLICATE_MESSAGE,
            }
        if existing is not None:
            existing.status = RequestStatus.CANCELLED
            existing.cancelled_at = timezone.now()
            existing.cancelled_by = requester
            existing.cancelled_by_name = requester.display_name
            existing.cancel_reason = SUPERSEDED_REASON
            existing.save(update_fields=[
                "status", "cancelled_at", "cancelled_by", "cancelled_by_name", "cancel_reason", "updated_at",
            ])
            log.info("Liberty request %s superseded by a new submission", existing.pk)

        req = LibertyRequest.objects.create(
            requester=requester,
            requester_name=requester.display_name,
            requester_email=requester.email,
            weekend_date=weekend,
            status=RequestStatus.PENDING,
            **_request_fields(cd),
        )
    log.info("Liberty request %s created for %s (%s)", req.pk, req.requester_name, weekend)
    return {"success": True, "request": req}


def create_liberty_request_for_user(
    data: Mapping[str, Any], target: Personnel, actor: Personnel, status: str = RequestStatus.APPROVED
) -> LibertyRequest:
    """Sign someone out on their behalf. Auto-approved unless ``status`` says pending."""
    require_permission(actor, Permission.CREATE_LEAVE_FOR_OTHERS)
    if status not in (RequestStatus.PENDING, RequestStatus.APPROVED):
        raise ValidationError({"status": ["Status must be pending or approved."]})
    cd = _clean(data)
    _check_people(cd, target)

    req = LibertyRequest(
        requester=target,
        requester_name=target.display_name,
        requester_email=target.email,
        weekend_date=cd["weekend_date"],
        status=RequestStatus.PENDING,
        created_on_behalf_of=True,
        created_by=actor,
        created_by_name=actor.display_name,
        **_request_fields(cd),
    )
    if status == RequestStatus.APPROVED:
        _stamp_approval(req, actor)
    req.save()
    log.info("Liberty request %s created by %s on behalf of %s", req.pk, actor.display_name, target.display_name)
    return req


def _can_manage(actor: Personnel) -> bool:
    return actor_has(actor, Permission.APPROVE_PASS_REQUESTS)


def _stored_input(req: LibertyRequest) -> Dict[str, Any]:
    """The stored request in form-input shape, the base a partial update merges into."""
    return {
        "weekend_date": req.weekend_date.isoformat(),
        "locations": list(req.locations or []),
        "custom_location": req.custom_location or "",
        "time_slots": list(req.time_slots or []),
        "contact_number": req.contact_number or "",
        "purpose": req.purpose or "",
        "notes": req.notes or "",
        "companions": list(req.companions or []),
        "is_driver": req.is_driver,
        "passenger_capacity": req.passenger_capacity,
    }


def update_liberty_request(
    request_id: int, data: Mapping[str, Any], actor: Personnel, partial: bool = False
) -> LibertyRequest:
    """Edit a pending or approved request.

    With ``partial`` the fields in ``data`` are laid over the stored request,
    so a body of just ``{"notes": ...}`` is enough.
    """
    with transaction.atomic():
        req = LibertyRequestRepository.get(request_id, for_update=True)
        if req.requester_id != actor.pk and not _can_manage(actor):
            raise Forbidden("You can only edit your own requests")
        if req.status not in ACTIVE_REQUEST_STATUSES:
            raise InvalidState("Can only edit pending or approved requests")

        payload = {**_stored_input(req), **data} if partial else dict(data)
        payload.setdefault("weekend_date", req.weekend_date.isoformat())
        cd = _clean(payload)
        if cd["weekend_date"] != req.weekend_date:
            raise ValidationError({"weekend_date": ["The weekend of an existing request cannot change."]})
        _check_people(cd, req.requester)

        fields = _request_fields(cd)
        for name, value in fields.items():
            setattr(req, name, value)
        req.last_edited_by = actor
        req.last_edited_at = timezone.now()
        req.save(update_fields=list(fields) + ["last_edited_by", "last_edited_at", "updated_at"])
    return req


def cancel_liberty_request(request_id: int, actor: Personnel, reason: str = "") -> LibertyRequest:
    with transaction.atomic():
        req = LibertyRequestRepository.get(request_id, for_update=True)
        if req.requester_id != actor.pk and not _can_manage(actor):
            raise Forbidden("You can only cancel your own requests")
        if req.status not in ACTIVE_REQUEST_STATUSES:
            raise InvalidState("Can only cancel pending or approved requests")
        req.status = RequestStatus.CANCELLED
        req.cancelled_at = timezone.now()
        req.cancelled_by = actor
        req.cancelled_by_name = actor.display_name
        req.cancel_reason = reason or None
        req.save(update_fields=[
            "status", "cancelled_at", "cancelled_by", "cancelled_by_name", "cancel_reason", "updated_at",
        ])
    return req

# ==========================================================
# Approval
# ==========================================================

def approve_liberty_request(request_id: int, actor: Personnel) -> LibertyRequest:
    """Approve a pending request and stamp the approver's initials."""
    require_permission(actor, Permission.APPROVE_PASS_REQUESTS)
    with transaction.atomic():
        req = LibertyRequestRepository.get(request_id, for_update=True)
        if req.status != RequestStatus.PENDING:
            raise InvalidState("Request is no longer pending")
        _stamp_approval(req, actor)
        req.save(update_fields=[
            "status", "approved_by", "approved_by_name", "approver_initials", "approved_at", "updated_at",
        ])
    log.info("Liberty request %s approved by %s", req.pk, req.approved_by_name)
    return req


def reject_liberty_request(request_id: int, actor: Personnel, reason: str = "") -> LibertyRequest:
    require_permission(actor, Permission.APPROVE_PASS_REQUESTS)
    with transaction.atomic():
        req = LibertyRequestRepository.get(request_id, for_update=True)
        if req.status != RequestStatus.PENDING:
            raise InvalidState("Request is no longer pending")
        req.status = RequestStatus.REJECTED
        req.rejected_by = actor
        req.rejected_by_name = actor.display_name
        req.rejected_at = timezone.now()
        req.rejection_reason = reason or None
        req.save(update_fields=[
            "status", "rejected_by", "rejected_by_name", "rejected_at", "rejection_reason", "updated_at",
        ])
    return req


def _bulk(request_ids: Iterable[int], action: Callable[[int], Any]) -> List[Dict[str, Any]]:
    results = []
    for request_id in request_ids:
        try:
            action(request_id)
        except DomainError as exc:
            results.append({"requestId": request_id, "success": False, "error": exc.message})
        else:
            results.append({"requestId": request_id, "success": True})
    return results


def bulk_approve(request_ids: Iterable[int], actor: Personnel) -> List[Dict[str, Any]]:
    """Approve each id on its own; one failure does not stop the rest.

    Returns:
        List[Dict[str, Any]]: ``{"requestId", "success"[, "error"]}`` per id, in input order.
    """
    return _bulk(request_ids, lambda rid: approve_liberty_request(rid, actor))


def bulk_reject(request_ids: Iterable[int], actor: Personnel, reason: str = "") -> List[Dict[str, Any]]:
    return _bulk(request_ids, lambda rid: reject_liberty_request(rid, actor, reason))

# ==========================================================
# Join requests
# ==========================================================

def _get_for_join(request_id: int) -> LibertyRequest:
    try:
        return LibertyRequestRepository.get(request_id, for_update=True)
    except NotFound:
        raise NotFound("Liberty request not found", request_id=request_id)


def request_to_join(request_id: int, person: Personnel) -> LibertyRequest:
    with transaction.atomic():
        req = _get_for_join(request_id)
        if req.status not in ACTIVE_REQUEST_STATUSES:
            raise InvalidState("Can only join pending or approved liberty groups")
        join_requests = list(req.join_requests or [])
        if any(jr.get("user_id") == person.pk for jr in join_requests):
            raise InvalidState("You have already requested to join this group")
        if req.requester_id == person.pk:
            raise Forbidden("You cannot join your own liberty group")
        if any(c.get("id") == person.pk for c in req.companions or []):
            raise InvalidState("You are already in this group")

        join_requests.append({
            "user_id": person.pk,
            "user_name": person.display_name,
            "user_rank": person.rank or "",
            "status": JoinStatus.PENDING.value,
            "requested_at": _now_iso(),
        })
        req.join_requests = join_requests
        req.save(update_fields=["join_requests", "updated_at"])
    return req


def _pending_join(req: LibertyRequest, user_id: int) -> int:
    for i, jr in enumerate(req.join_requests or []):
        if jr.get("user_id") == user_id:
            if jr.get("status") != JoinStatus.PENDING:
                raise InvalidState("Join request has already been processed")
            return i
    raise NotFound("Join request not found")


def _require_group_owner(req: LibertyRequest, actor: Personnel) -> None:
    if req.requester_id != actor.pk and not _can_manage(actor):
        raise Forbidden("Only the group owner or leadership can answer join requests")


def approve_join_request(request_id: int, user_id: int, actor: Personnel) -> LibertyRequest:
    """Accept a join request; the joiner moves into companions in the same write."""
    with transaction.atomic():
        req = _get_for_join(request_id)
        _require_group_owner(req, actor)
        index = _pending_join(req, user_id)
        join_requests = list(req.join_requests)
        jr = {
            **join_requests[index],
            "status": JoinStatus.APPROVED.value,
            "responded_at": _now_iso(),
            "responded_by": actor.pk,
            "responded_by_name": actor.display_name,
        }
        join_requests[index] = jr
        req.join_requests = join_requests
        req.companions = list(req.companions or []) + [{
            "id": jr["user_id"],
            "name": jr.get("user_name") or "",
            "rank": jr.get("user_rank") or "",
            "joined_via_request": True,
        }]
        req.save(update_fields=["join_requests", "companions", "updated_at"])
    return req


def reject_join_request(request_id: int, user_id: int, actor: Personnel, reason: str = "") -> LibertyRequest:
    with transaction.atomic():
        req = _get_for_join(request_id)
        _require_group_owner(req, actor)
        index = _pending_join(req, user_id)
        join_requests = list(req.join_requests)
        join_requests[index] = {
            **join_requests[index],
            "status": JoinStatus.REJECTED.value,
            "rejection_reason": reason or None,
            "responded_at": _now_iso(),
            "responded_by": actor.pk,
            "responded_by_name": actor.display_name,
        }
        req.join_requests = join_requests
        req.save(update_fields=["join_requests", "updated_at"])
    return req


def cancel_join_request(request_id: int, person: Personnel) -> LibertyRequest:
    with transaction.atomic():
        req = _get_for_join(request_id)
        join_requests = list(req.join_requests or [])
        for i, jr in enumerate(join_requests):
            if jr.get("user_id") == person.pk and jr.get("status") == JoinStatus.PENDING:
                del join_requests[i]
                break
        else:
            raise NotFound("No pending join request found")
        req.join_requests = join_requests
        req.save(update_fields=["join_requests", "updated_at"])
    return req

# ==========================================================
# Time slots
# ==========================================================

def _slot_at(req: LibertyRequest, slot_index: int) -> Dict[str, Any]:
    slots = req.time_slots or []
    if not isinstance(slot_index, int) or not 0 <= slot_index < len(slots):
        raise ValidationError({"slot_index": ["Invalid time slot"]}, message="Invalid time slot")
    return slots[slot_index]


def join_time_slot(request_id: int, slot_index: int, person: Personnel) -> LibertyRequest:
    """Add ``person`` to one time slot's participants.

    Raises:
        NotFound: Unknown request.
        ValidationError: Slot index out of range.
        Forbidden: ``person`` is the requester.
        InvalidState: Already in the slot, or the request is no longer active.
        CapacityExceeded: A driver's slot is full.
    """
    with transaction.atomic():
        req = _get_for_join(request_id)
        slot = _slot_at(req, slot_index)
        if req.requester_id == person.pk:
            raise Forbidden("You cannot join your own liberty request")
        if req.status not in ACTIVE_REQUEST_STATUSES:
            raise InvalidState("Can only join pending or approved liberty groups")
        participants = list(slot.get("participants") or [])
        if any(p.get("id") == person.pk for p in participants):
            raise InvalidState("You are already in this time slot")
        if req.is_driver and len(participants) >= (req.passenger_capacity or 0):
            raise CapacityExceeded("No available seats for this time slot")

        participants.append({**person.as_participant(), "joined_at": _now_iso()})
        slots = list(req.time_slots)
        slots[slot_index] = {**slot, "participants": participants}
        req.time_slots = slots
        req.save(update_fields=["time_slots", "updated_at"])
    return req


def leave_time_slot(request_id: int, slot_index: int, person: Personnel) -> LibertyRequest:
    with transaction.atomic():
        req = _get_for_join(request_id)
        slot = _slot_at(req, slot_index)
        participants = slot.get("participants") or []
        remaining = [p for p in participants if p.get("id") != person.pk]
        if len(remaining) == len(participants):
            raise InvalidState("You are not in this time slot")
        slots = list(req.time_slots)
        slots[slot_index] = {**slot, "participants": remaining}
        req.time_slots = slots
        req.save(update_fields=["time_slots", "updated_at"])
    return req

# ==========================================================
# Queries
# ==========================================================

def list_my_liberty_requests(person: Personnel) -> List[LibertyRequest]:
    return list(LibertyRequestRepository.for_requester(person))


def list_pending_liberty_requests(actor: Personnel) -> List[LibertyRequest]:
    require_permission(actor, Permission.VIEW_PASS_REQUESTS)
    return list(LibertyRequestRepository.pending())


def pending_liberty_count() -> int:
    return LibertyRequestRepository.pending_count()


def available_liberty_groups(person: Personnel, weekend_date: Optional[date] = None) -> List[LibertyRequest]:
    return list(LibertyRequestRepository.joinable(person, weekend_date))


def deadline_status(now=None) -> Dict[str, Any]:
    """Where the current moment sits relative to this weekend's submission deadline."""
    config = SettingsRepository.app_config()
    zone = tz.configured_timezone(config)
    day = config.get("libertyDeadlineDayOfWeek", tz.DEFAULT_DEADLINE_DAY)
    at = config.get("libertyDeadlineTime", tz.DEFAULT_DEADLINE_TIME)
    saturday, sunday = tz.next_weekend_dates(zone, now)
    return {
        "beforeDeadline": tz.is_before_deadline(day, at, zone, now),
        "deadline": tz.deadline_date(day, at, zone, now).isoformat(),
        "deadlineDay": tz.weekday_name(day),
        "weekendDate": saturday.isoformat(),
        "weekendEnd": sunday.isoformat(),
    }

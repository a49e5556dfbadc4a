from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.db import transaction

from companyops.domain.errors import InvalidState, NotFound, ValidationError
from companyops.domain.models import (
    Personnel,
    ScheduleEntry,
    ScheduleSkip,
    ScheduleStatus,
    ShiftType,
)
from companyops.domain.repositories import PersonnelRepository, ScheduleRepository, SettingsRepository
from companyops.domain.roles import Permission, require_permission
from companyops.services import timezone as tz
from companyops.services.subscriptions import ChangeEvent, Subscription, subscribe
from companyops.utils import _parse_iso_date

log = logging.getLogger(__name__)

CQ_SHIFT_TIMES = {
    ShiftType.SHIFT1: {"start": "20:00", "end": "01:00", "label": "2000-0100"},
    ShiftType.SHIFT2: {"start": "01:00", "end": "06:00", "label": "0100-0600"},
}

SHIFT_CONTEXT_TONIGHT = "tonight"
SHIFT_CONTEXT_IN_PROGRESS = "in_progress"
SHIFT_CONTEXT_AFTER_MIDNIGHT = "after_midnight"

# =========================
# My shift
# =========================

@dataclass
class MyShift:
    """Where a person sits on the CQ schedule for the coming night."""
    entry: ScheduleEntry
    shift_type: str
    position: int
    partner_name: str
    shift_start: str
    shift_end: str
    shift_context: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scheduleId": self.entry.pk,
            "date": self.entry.date.isoformat(),
            "dayOfWeek": self.entry.day_of_week,
            "status": self.entry.status,
            "myShiftType": self.shift_type,
            "myPosition": self.position,
            "myPartnerName": self.partner_name,
            "myShiftStart": self.shift_start,
            "myShiftEnd": self.shift_end,
            "shiftContext": self.shift_context,
        }


def shift_times(shift_type: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Configured start/end for a shift, defaulting to CQ_SHIFT_TIMES."""
    config = config if config is not None else SettingsRepository.app_config()
    key = "cqShift1" if shift_type == ShiftType.SHIFT1 else "cqShift2"
    defaults = CQ_SHIFT_TIMES[shift_type]
    return {
        "start": config.get(f"{key}Start") or defaults["start"],
        "end": config.get(f"{key}End") or defaults["end"],
    }


def find_my_shift_tonight(person: Personnel, now: Optional[datetime] = None) -> Optional[MyShift]:
    """Resolve the person's shift for tonight across today's and tomorrow's entries.

    Shift 2 runs after midnight but is stored on the entry of the night it
    belongs to, so the lookup checks, in order: today's shift 1 (starts
    tonight), today's shift 2 (already under way or imminent), tomorrow's
    shift 2 (starts after midnight tonight). Only scheduled or active entries count.

    Args:
        person (Personnel): Whose shift to find.
        now (Optional[datetime], optional): Evaluation instant. Defaults to now.

    Returns:
        Optional[MyShift]: The match, or None when the person is not on.
    """
    config = SettingsRepository.app_config()
    tz_name = tz.configured_timezone(config)
    today = tz.today_in(tz_name, now)
    tomorrow = tz.tomorrow_in(tz_name, now)
    entries = ScheduleRepository.open_for_dates([today, tomorrow])

    candidates = (
        (entries.get(today), ShiftType.SHIFT1, SHIFT_CONTEXT_TONIGHT),
        (entries.get(today), ShiftType.SHIFT2, SHIFT_CONTEXT_IN_PROGRESS),
        (entries.get(tomorrow), ShiftType.SHIFT2, SHIFT_CONTEXT_AFTER_MIDNIGHT),
    )
    for entry, shift_type, context in candidates:
        if entry is None:
            continue
        position = entry.position_of(person.pk, shift_type)
        if position is None:
            continue
        times = shift_times(shift_type, config)
        return MyShift(
            entry=entry,
            shift_type=shift_type,
            position=position,
            partner_name=entry.partner_name(shift_type, position),
            shift_start=times["start"],
            shift_end=times["end"],
            shift_context=context,
        )
    return None


def watch_my_shift(
    person: Personnel,
    on_change: Callable[[Optional[MyShift]], None],
    on_error: Optional[Callable[[Exception], None]] = None,
) -> Subscription:
    """Re-derive the person's shift on every committed schedule change.

    The current value is delivered once immediately, then after each change.
    """
    def _changed(event: ChangeEvent) -> None:
        on_change(find_my_shift_tonight(person))

    sub = subscribe(ScheduleEntry, _changed, on_error)
    try:
        on_change(find_my_shift_tonight(person))
    except Exception as exc:
        sub._fail(exc)
    return sub

# =========================
# Skips
# =========================

def skip_date(skip_on: date, reason: str, actor: Personnel) -> Dict[str, Any]:
    """Take a date out of the rotation and pull every later scheduled night forward.

    The entry for ``skip_on`` is deleted and each later ``scheduled`` entry moves
    to the date its predecessor held, so the rotation stays contiguous. The skip
    record, the delete and every re-dating commit together.

    Returns:
        Dict[str, Any]: {success, skipId, shifted}.
    """
    require_permission(actor, Permission.MANAGE_CQ)
    skip_on = _parse_iso_date(skip_on)

    with transaction.atomic():
        skip = ScheduleSkip.objects.create(
            date=skip_on, reason=reason or "", skipped_by=actor, skipped_by_name=actor.display_name
        )
        shifted = 0
        existing = list(ScheduleEntry.objects.select_for_update().filter(date=skip_on))
        if existing:
            for entry in existing:
                entry.delete()
            prev_date = skip_on
            # ascending order frees each target date before it is taken
            for entry in ScheduleRepository.scheduled_after(skip_on).select_for_update():
                old_date = entry.date
                entry.date = prev_date
                entry.day_of_week = prev_date.strftime("%A")
                entry.save(update_fields=["date", "day_of_week", "updated_at"])
                prev_date = old_date
                shifted += 1

    log.info("Skipped CQ date %s (%s): %d later night(s) moved up", skip_on, reason, shifted)
    return {"success": True, "skipId": skip.pk, "shifted": shifted}


def remove_skip(skip_id: int, actor: Personnel) -> None:
    require_permission(actor, Permission.MANAGE_CQ)
    ScheduleSkip.objects.filter(pk=skip_id).delete()

# =========================
# Status and assignments
# =========================

def update_schedule_status(schedule_id: int, status: str, actor: Personnel) -> ScheduleEntry:
    require_permission(actor, Permission.MANAGE_CQ_OPERATIONS)
    if status not in ScheduleStatus.values:
        raise ValidationError({"status": [f"Unknown status {status!r}"]})
    entry = ScheduleRepository.get(schedule_id)
    entry.status = status
    entry.updated_by = actor
    entry.save(update_fields=["status", "updated_by", "updated_at"])
    return entry


def start_shift(schedule_id: int, actor: Personnel) -> ScheduleEntry:
    return update_schedule_status(schedule_id, ScheduleStatus.ACTIVE, actor)


def complete_shift(schedule_id: int, actor: Personnel) -> ScheduleEntry:
    return update_schedule_status(schedule_id, ScheduleStatus.COMPLETED, actor)


def update_shift_assignment(
    schedule_id: int,
    shift_type: str,
    position: int,
    personnel: Optional[Personnel],
    name: Optional[str],
    actor: Personnel,
) -> ScheduleEntry:
    """Manually put someone (or nobody) in one slot of a night."""
    require_permission(actor, Permission.MANAGE_CQ)
    with transaction.atomic():
        entry = ScheduleEntry.objects.select_for_update().filter(pk=schedule_id).first()
        if entry is None:
            raise NotFound("Schedule not found", schedule_id=schedule_id)
        try:
            fields = entry.assign(shift_type, int(position), personnel, name)
        except ValueError as exc:
            raise ValidationError({"shiftType": [str(exc)]})
        entry.updated_by = actor
        entry.save(update_fields=fields + ["updated_by", "updated_at"])
    return entry

# =========================
# Import
# =========================

def _resolve_person(person_id: Any, name: str) -> Optional[Personnel]:
    if person_id:
        found = PersonnelRepository.find(person_id)
        if found:
            return found
    return PersonnelRepository.by_name(name) if name else None


def import_schedule(rows: Iterable[Dict[str, Any]], actor: Personnel, clear_existing: bool = False) -> int:
    """Upsert one entry per row's date in a single transaction.

    Rows use the CSV shape produced by ``parse_schedule_csv``: ``date``,
    ``dayOfWeek``, ``shift1Person1Name``/``Id`` ... ``shift2Person2Name``/``Id``,
    ``isPotentialSkipDay``, ``skipDayReason``.

    Returns:
        int: Number of rows written.
    """
    require_permission(actor, Permission.MANAGE_CQ)
    rows = list(rows)
    errors: Dict[str, List[str]] = {}
    for i, row in enumerate(rows):
        try:
            _parse_iso_date(row.get("date"))
        except (TypeError, ValueError):
            errors.setdefault(f"rows[{i}].date", []).append("Date must be YYYY-MM-DD")
    if errors:
        raise ValidationError(errors)

    with transaction.atomic():
        if clear_existing:
            ScheduleEntry.objects.all().delete()
        for row in rows:
            d = _parse_iso_date(row["date"])
            entry = ScheduleEntry.objects.filter(date=d).first()
            created = entry is None
            if created:
                entry = ScheduleEntry(date=d, status=ScheduleStatus.SCHEDULED, imported_by=actor)
            else:
                entry.updated_by = actor
            entry.day_of_week = row.get("dayOfWeek") or d.strftime("%A")
            for shift_type in ShiftType.values:
                for pos in (1, 2):
                    key = f"{shift_type}Person{pos}"
                    name = (row.get(f"{key}Name") or "").strip()
                    entry.assign(shift_type, pos, _resolve_person(row.get(f"{key}Id"), name), name)
            entry.is_potential_skip_day = bool(row.get("isPotentialSkipDay"))
            entry.skip_day_reason = row.get("skipDayReason") or None
            entry.save()

    log.info("Imported %d CQ schedule row(s) (clear_existing=%s)", len(rows), clear_existing)
    return len(rows)


def _split_pair(cell: str) -> List[str]:
    names = [n.strip() for n in (cell or "").split("/")]
    return (names + ["", ""])[:2]


def _parse_csv_date(raw: str) -> date:
    raw = raw.strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    raise ValueError(raw)


def parse_schedule_csv(content: str) -> List[Dict[str, Any]]:
    """Parse the schedule CSV (Date, Day, Shift 1, Shift 2).

    Each shift cell holds two names separated by '/'. A '*' on any name marks
    the night as a potential skip day and is stripped from the name.

    Raises:
        ValidationError: Missing columns or unreadable dates, reported per row.
    """
    reader = csv.reader(io.StringIO(content.lstrip("\ufeff")))
    header = next(reader, None)
    if not header or len(header) < 4:
        raise ValidationError({"file": ["Expected columns: Date, Day, Shift 1, Shift 2"]})

    rows: List[Dict[str, Any]] = []
    errors: Dict[str, List[str]] = {}
    for line_no, cols in enumerate(reader, start=2):
        if not any(c.strip() for c in cols):
            continue
        if len(cols) < 4:
            errors.setdefault(f"line {line_no}", []).append("Expected 4 columns")
            continue
        try:
            d = _parse_csv_date(cols[0])
        except ValueError:
            errors.setdefault(f"line {line_no}", []).append(f"Unreadable date {cols[0]!r}")
            continue
        row: Dict[str, Any] = {"date": d.isoformat(), "dayOfWeek": cols[1].strip() or d.strftime("%A")}
        starred = False
        for shift_type, cell in ((ShiftType.SHIFT1, cols[2]), (ShiftType.SHIFT2, cols[3])):
            for pos, name in enumerate(_split_pair(cell), start=1):
                if "*" in name:
                    starred = True
                    name = name.replace("*", "").strip()
                row[f"{shift_type}Person{pos}Name"] = name
        row["isPotentialSkipDay"] = starred
        row["skipDayReason"] = "Candidate leadership on shift" if starred else None
        rows.append(row)

    if errors:
        raise ValidationError(errors)
    return rows

# =========================
# Generation
# =========================

@dataclass
class GenerationResult:
    created: List[date] = field(default_factory=list)
    skipped: List[date] = field(default_factory=list)
    existing: List[date] = field(default_factory=list)


def generate_schedule(start: date, days: int = 30, actor: Optional[Personnel] = None) -> GenerationResult:
    """Round-robin the CQ roster over ``days`` days from ``start``.

    Skip dates get no entry and do not advance the rotation. Dates that already
    have an entry are left untouched but do consume a rotation step.

    Raises:
        InvalidState: The roster is empty.
    """
    if actor is not None:
        require_permission(actor, Permission.MANAGE_CQ)
    start = _parse_iso_date(start)
    nights = ScheduleRepository.roster_nights()
    if not nights:
        raise InvalidState("No CQ roster found. Import a roster first.")

    skipped = ScheduleRepository.skipped_dates()
    result = GenerationResult()
    roster_index = 0

    with transaction.atomic():
        for offset in range(int(days)):
            d = start + timedelta(days=offset)
            if d in skipped:
                result.skipped.append(d)
                continue
            night = nights[roster_index % len(nights)]
            roster_index += 1
            if ScheduleEntry.objects.filter(date=d).exists():
                result.existing.append(d)
                continue
            entry = ScheduleEntry(date=d, day_of_week=d.strftime("%A"), imported_by=actor)
            for shift_type, seats in night.items():
                for pos, seat in seats.items():
                    entry.assign(shift_type, pos, seat.personnel, seat.name or None)
            entry.save()
            result.created.append(d)

    log.info(
        "Generated CQ schedule from %s for %d day(s): created=%d skipped=%d existing=%d",
        start, days, len(result.created), len(result.skipped), len(result.existing),
    )
    return result

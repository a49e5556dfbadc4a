from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.utils import timezone as dj_timezone

from companyops.domain.models import MealSlot

log = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_DEADLINE_DAY = 2  # Tuesday, 0 = Sunday
DEFAULT_DEADLINE_TIME = "23:59"

# Upper bound (exclusive) on the hour for each meal slot; the last slot takes the rest.
SLOT_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (10, MealSlot.BREAKFAST),
    (15, MealSlot.LUNCH),
)

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# =========================
# Zone resolution
# =========================

def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA name, falling back to the default zone on garbage."""
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown timezone %r, using %s", tz_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def configured_timezone(config: Optional[Dict[str, Any]] = None) -> str:
    """The zone name from ``appConfig``, or the default if unset."""
    if config is None:
        from companyops.domain.repositories import SettingsRepository
        config = SettingsRepository.app_config()
    return (config or {}).get("timezone") or DEFAULT_TIMEZONE


def local_now(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> datetime:
    """``now`` (or the current instant) converted to wall-clock time in the zone."""
    instant = now or dj_timezone.now()
    if dj_timezone.is_naive(instant):
        instant = dj_timezone.make_aware(instant, ZoneInfo("UTC"))
    return instant.astimezone(get_zone(tz_name))

# =========================
# Calendar helpers
# =========================

def today_in(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    return local_now(tz_name, now).date()


def tomorrow_in(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    return today_in(tz_name, now) + timedelta(days=1)


def current_hour_in(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> int:
    return local_now(tz_name, now).hour


def current_minutes_in(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> int:
    """Minutes since local midnight (0-1439)."""
    local = local_now(tz_name, now)
    return local.hour * 60 + local.minute


def current_hhmm_in(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Current wall-clock time as 'HHMM' (e.g. '0930')."""
    return local_now(tz_name, now).strftime("%H%M")


def js_weekday(d: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (d.weekday() + 1) % 7


def weekday_name(day_of_week: Optional[int]) -> str:
    return WEEKDAY_NAMES[DEFAULT_DEADLINE_DAY if day_of_week is None else day_of_week]

# =========================
# Slots
# =========================

def slot_for_hour(hour: int) -> str:
    """Map an hour of day to breakfast (<10), lunch (<15) or dinner."""
    for upper, slot in SLOT_THRESHOLDS:
        if hour < upper:
            return slot
    return MealSlot.DINNER


def determine_target_slot(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    return slot_for_hour(current_hour_in(tz_name, now))

# =========================
# Shift windows
# =========================

def parse_time_to_minutes(value: str) -> int:
    """'HH:MM' to minutes since midnight."""
    hh, mm = str(value).split(":")[:2]
    return int(hh) * 60 + int(mm)


def is_within_shift_window(
    shift_start: str, shift_end: str, tz_name: Optional[str] = None, now: Optional[datetime] = None
) -> bool:
    """Whether now falls inside [start, end]; overnight when end < start."""
    current = current_minutes_in(tz_name, now)
    start = parse_time_to_minutes(shift_start)
    end = parse_time_to_minutes(shift_end)
    if end < start:
        return current >= start or current <= end
    return start <= current <= end


def is_shift_upcoming(
    shift_start: str, shift_end: str, tz_name: Optional[str] = None, now: Optional[datetime] = None
) -> bool:
    """Whether the shift has yet to start today."""
    if is_within_shift_window(shift_start, shift_end, tz_name, now):
        return False
    current = current_minutes_in(tz_name, now)
    start = parse_time_to_minutes(shift_start)
    end = parse_time_to_minutes(shift_end)
    if end < start:
        return end < current < start
    return current < start

# =========================
# Liberty deadline and weekends
# =========================

def _deadline_parts(day_of_week: Optional[int], deadline_time: Optional[str]) -> Tuple[int, int, int]:
    day = DEFAULT_DEADLINE_DAY if day_of_week is None else int(day_of_week)
    hh, mm = (deadline_time or DEFAULT_DEADLINE_TIME).split(":")[:2]
    return day, int(hh), int(mm)


def is_before_deadline(
    day_of_week: Optional[int] = None,
    deadline_time: Optional[str] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Whether the weekly liberty deadline has not passed yet.

    Before the deadline day is always true, after it always false; on the day
    itself the time decides, with the deadline minute still counting as before.

    Args:
        day_of_week (Optional[int]): Deadline day, 0 = Sunday. Defaults to Tuesday.
        deadline_time (Optional[str]): 'HH:MM'. Defaults to '23:59'.
        tz_name (Optional[str]): IANA zone used to read the clock.
        now (Optional[datetime]): Instant to evaluate; defaults to the current time.

    Returns:
        bool: True if requests may still be submitted.
    """
    day, hour, minute = _deadline_parts(day_of_week, deadline_time)
    local = local_now(tz_name, now)
    current_day = js_weekday(local.date())
    if current_day < day:
        return True
    if current_day == day:
        return (local.hour, local.minute) <= (hour, minute)
    return False


def deadline_date(
    day_of_week: Optional[int] = None,
    deadline_time: Optional[str] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """The upcoming deadline instant (today counts when it is the deadline day)."""
    day, hour, minute = _deadline_parts(day_of_week, deadline_time)
    local = local_now(tz_name, now)
    current_day = js_weekday(local.date())
    days_until = (day - current_day + 7) % 7
    if current_day > day:
        days_until = days_until or 7
    target = local.date() + timedelta(days=days_until)
    return datetime(target.year, target.month, target.day, hour, minute, 59, tzinfo=local.tzinfo)


def next_weekend_dates(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> Tuple[date, date]:
    """(Saturday, Sunday) of the next weekend; on a Saturday that is the following one."""
    today = today_in(tz_name, now)
    days_until_saturday = (6 - js_weekday(today) + 7) % 7 or 7
    saturday = today + timedelta(days=days_until_saturday)
    return saturday, saturday + timedelta(days=1)


def current_weekend_date(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> Optional[date]:
    """Saturday of the weekend in progress (Sat, Sun or the Monday after), else None."""
    today = today_in(tz_name, now)
    days_back = {6: 0, 0: 1, 1: 2}.get(js_weekday(today))
    if days_back is None:
        return None
    return today - timedelta(days=days_back)

# =========================
# Formatting
# =========================

def format_timestamp_for_notification(
    timestamp: Optional[datetime] = None, tz_name: Optional[str] = None
) -> str:
    """'HH:MM Mon D' in the zone, e.g. '14:30 Jan 22'."""
    local = local_now(tz_name, timestamp)
    return f"{local:%H:%M} {local:%b} {local.day}"

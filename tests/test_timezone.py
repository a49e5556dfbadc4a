from datetime import date, datetime, timezone as dt_timezone

import pytest

from companyops.services import timezone as tz

NY = "America/New_York"


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def test_unknown_zone_falls_back_to_default():
    assert str(tz.get_zone("Not/AZone")) == tz.DEFAULT_TIMEZONE


def test_local_date_differs_from_utc_date_late_evening():
    # 03:00 UTC on the 21st is 22:00 on the 20th in New York
    now = utc(2026, 1, 21, 3, 0)
    assert tz.today_in(NY, now) == date(2026, 1, 20)
    assert tz.tomorrow_in(NY, now) == date(2026, 1, 21)
    assert tz.current_hhmm_in(NY, now) == "2200"
    assert tz.current_minutes_in(NY, now) == 22 * 60


@pytest.mark.parametrize("hour,slot", [(0, "breakfast"), (9, "breakfast"), (10, "lunch"), (14, "lunch"), (15, "dinner"), (23, "dinner")])
def test_slot_for_hour(hour, slot):
    assert tz.slot_for_hour(hour) == slot


def test_determine_target_slot_uses_local_hour():
    # 14:30 UTC is 09:30 in New York
    assert tz.determine_target_slot(NY, utc(2026, 1, 22, 14, 30)) == "breakfast"


def test_overnight_shift_window():
    # local 23:00, 00:30 and 12:00
    assert tz.is_within_shift_window("20:00", "01:00", NY, utc(2026, 1, 21, 4, 0))
    assert tz.is_within_shift_window("20:00", "01:00", NY, utc(2026, 1, 21, 5, 30))
    assert not tz.is_within_shift_window("20:00", "01:00", NY, utc(2026, 1, 21, 17, 0))


def test_shift_upcoming():
    noon = utc(2026, 1, 21, 17, 0)
    assert tz.is_shift_upcoming("20:00", "01:00", NY, noon)
    assert not tz.is_shift_upcoming("20:00", "01:00", NY, utc(2026, 1, 21, 4, 0))
    # a same-day window later that night
    half_past_midnight = utc(2026, 1, 21, 5, 30)
    assert tz.is_shift_upcoming("01:00", "06:00", NY, half_past_midnight)
    assert not tz.is_shift_upcoming("01:00", "06:00", NY, utc(2026, 1, 21, 12, 0))


def test_deadline_minute_still_counts_as_before():
    # Tuesday 2026-01-20 23:59 local
    assert tz.is_before_deadline(2, "23:59", NY, utc(2026, 1, 21, 4, 59))
    # Wednesday 00:30 local
    assert not tz.is_before_deadline(2, "23:59", NY, utc(2026, 1, 21, 5, 30))
    # Monday
    assert tz.is_before_deadline(2, "23:59", NY, utc(2026, 1, 19, 15, 0))


def test_sunday_deadline_uses_zero():
    # Sunday 2026-01-25 10:00 local
    sunday_morning = utc(2026, 1, 25, 15, 0)
    assert tz.is_before_deadline(0, "12:00", NY, sunday_morning)
    assert not tz.is_before_deadline(0, "09:00", NY, sunday_morning)


def test_deadline_date_rolls_to_next_week_after_passing():
    wednesday = utc(2026, 1, 21, 17, 0)
    deadline = tz.deadline_date(2, "23:59", NY, wednesday)
    assert deadline.date() == date(2026, 1, 27)
    assert (deadline.hour, deadline.minute, deadline.second) == (23, 59, 59)

    tuesday = utc(2026, 1, 20, 17, 0)
    assert tz.deadline_date(2, "23:59", NY, tuesday).date() == date(2026, 1, 20)


def test_next_weekend_dates():
    assert tz.next_weekend_dates(NY, utc(2026, 1, 20, 17, 0)) == (date(2026, 1, 24), date(2026, 1, 25))
    # on a Saturday the next weekend is the following one
    assert tz.next_weekend_dates(NY, utc(2026, 1, 24, 17, 0)) == (date(2026, 1, 31), date(2026, 2, 1))


def test_current_weekend_date():
    assert tz.current_weekend_date(NY, utc(2026, 1, 26, 17, 0)) == date(2026, 1, 24)
    assert tz.current_weekend_date(NY, utc(2026, 1, 25, 17, 0)) == date(2026, 1, 24)
    assert tz.current_weekend_date(NY, utc(2026, 1, 21, 17, 0)) is None


def test_notification_timestamp_format():
    assert tz.format_timestamp_for_notification(utc(2026, 1, 22, 19, 30), NY) == "14:30 Jan 22"


def test_weekday_helpers():
    assert tz.js_weekday(date(2026, 1, 25)) == 0
    assert tz.js_weekday(date(2026, 1, 24)) == 6
    assert tz.weekday_name(2) == "Tuesday"
    assert tz.weekday_name(None) == "Tuesday"

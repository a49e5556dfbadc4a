from datetime import date, datetime, timezone as dt_timezone

import pytest

from companyops.domain.errors import Forbidden, InvalidState, ValidationError
from companyops.domain.models import (
    CQRosterEntry,
    Role,
    ScheduleEntry,
    ScheduleSkip,
    ScheduleStatus,
    SettingsKey,
    ShiftType,
)
from companyops.domain.repositories import SettingsRepository
from companyops.services import cq_schedule
from companyops.services import timezone as tz

# Tuesday 2026-01-20, noon in New York
NOW = datetime(2026, 1, 20, 17, 0, tzinfo=dt_timezone.utc)
TODAY = date(2026, 1, 20)
TOMORROW = date(2026, 1, 21)


@pytest.fixture
def night(db):
    def _night(d, s1=(None, None), s2=(None, None), status=ScheduleStatus.SCHEDULED):
        entry = ScheduleEntry(date=d, day_of_week=d.strftime("%A"), status=status)
        for shift_type, pair in ((ShiftType.SHIFT1, s1), (ShiftType.SHIFT2, s2)):
            for pos, person in enumerate(pair, start=1):
                entry.assign(shift_type, pos, person)
        entry.save()
        return entry
    return _night

# =========================
# My shift
# =========================

def test_shift_one_tonight(night, make_person):
    me, partner = make_person(), make_person()
    entry = night(TODAY, s1=(partner, me))

    shift = cq_schedule.find_my_shift_tonight(me, NOW)

    assert shift.entry == entry
    assert shift.shift_type == ShiftType.SHIFT1
    assert shift.position == 2
    assert shift.partner_name == partner.display_name
    assert (shift.shift_start, shift.shift_end) == ("20:00", "01:00")
    assert shift.shift_context == cq_schedule.SHIFT_CONTEXT_TONIGHT
    assert shift.as_dict()["myPartnerName"] == partner.display_name


def test_shift_two_on_todays_entry_is_in_progress(night, make_person):
    me = make_person()
    night(TODAY, s2=(me, None))
    shift = cq_schedule.find_my_shift_tonight(me, NOW)
    assert shift.shift_context == cq_schedule.SHIFT_CONTEXT_IN_PROGRESS
    assert shift.partner_name == ""


def test_shift_two_on_tomorrows_entry_starts_after_midnight(night, make_person):
    me = make_person()
    night(TOMORROW, s2=(None, me))
    shift = cq_schedule.find_my_shift_tonight(me, NOW)
    assert shift.shift_context == cq_schedule.SHIFT_CONTEXT_AFTER_MIDNIGHT
    assert (shift.shift_start, shift.shift_end) == ("01:00", "06:00")


def test_tomorrows_shift_one_is_not_tonight(night, make_person):
    me = make_person()
    night(TOMORROW, s1=(me, None))
    assert cq_schedule.find_my_shift_tonight(me, NOW) is None


def test_completed_entries_are_ignored(night, make_person):
    me = make_person()
    night(TODAY, s1=(me, None), status=ScheduleStatus.COMPLETED)
    assert cq_schedule.find_my_shift_tonight(me, NOW) is None


def test_shift_times_follow_app_config(night, make_person):
    SettingsRepository.put(SettingsKey.APP_CONFIG, {"cqShift1Start": "19:30"})
    me = make_person()
    night(TODAY, s1=(me, None))
    assert cq_schedule.find_my_shift_tonight(me, NOW).shift_start == "19:30"


def test_watch_my_shift_redelivers_on_commit(night, make_person, django_capture_on_commit_callbacks):
    me = make_person()
    seen = []
    entry = night(tz.today_in(tz.configured_timezone()))
    with cq_schedule.watch_my_shift(me, seen.append):
        assert seen == [None]
        with django_capture_on_commit_callbacks(execute=True):
            entry.assign(ShiftType.SHIFT1, 1, me)
            entry.save()
    assert len(seen) == 2
    assert seen[1].position == 1

# =========================
# Skips
# =========================

def test_skip_date_pulls_later_nights_forward(night, make_person, leader):
    people = [make_person() for _ in range(4)]
    for offset, person in enumerate(people):
        night(date(2026, 1, 20 + offset), s1=(person, None))

    result = cq_schedule.skip_date(date(2026, 1, 21), "Holiday", leader)

    assert result["success"] is True
    assert result["shifted"] == 2
    assert ScheduleSkip.objects.get(pk=result["skipId"]).skipped_by == leader
    by_date = {e.date: e.shift1_person1_id for e in ScheduleEntry.objects.all()}
    assert by_date == {
        date(2026, 1, 20): people[0].pk,
        date(2026, 1, 21): people[2].pk,
        date(2026, 1, 22): people[3].pk,
    }
    assert ScheduleEntry.objects.get(date=date(2026, 1, 21)).day_of_week == "Wednesday"


def test_skip_date_failure_leaves_schedule_untouched(night, make_person, leader, monkeypatch):
    people = [make_person() for _ in range(4)]
    for offset, person in enumerate(people):
        night(date(2026, 1, 20 + offset), s1=(person, None))
    before = {e.date: e.shift1_person1_id for e in ScheduleEntry.objects.all()}

    original_save = ScheduleEntry.save
    redates = []

    def failing_save(self, *args, **kwargs):
        if "date" in (kwargs.get("update_fields") or ()):
            redates.append(self.pk)
            if len(redates) == 2:
                raise RuntimeError("database went away")
        return original_save(self, *args, **kwargs)

    monkeypatch.setattr(ScheduleEntry, "save", failing_save)
    with pytest.raises(RuntimeError):
        cq_schedule.skip_date(date(2026, 1, 21), "Holiday", leader)
    monkeypatch.undo()

    assert len(redates) == 2
    assert not ScheduleSkip.objects.exists()
    after = {e.date: e.shift1_person1_id for e in ScheduleEntry.objects.all()}
    assert after == before


def test_skip_date_leaves_started_nights_in_place(night, make_person, leader):
    a, b, c, d, e = (make_person() for _ in range(5))
    night(date(2026, 1, 21), s1=(a, None))
    night(date(2026, 1, 22), s1=(b, None), status=ScheduleStatus.ACTIVE)
    night(date(2026, 1, 23), s1=(c, None))
    night(date(2026, 1, 24), s1=(d, None), status=ScheduleStatus.COMPLETED)
    night(date(2026, 1, 25), s1=(e, None))

    result = cq_schedule.skip_date(date(2026, 1, 21), "Holiday", leader)

    assert result["shifted"] == 2
    rows = {row.date: (row.shift1_person1_id, row.status) for row in ScheduleEntry.objects.all()}
    assert rows[date(2026, 1, 22)] == (b.pk, ScheduleStatus.ACTIVE)
    assert rows[date(2026, 1, 24)] == (d.pk, ScheduleStatus.COMPLETED)
    assert rows[date(2026, 1, 21)][0] == c.pk
    assert rows[date(2026, 1, 23)] == (e.pk, ScheduleStatus.SCHEDULED)
    assert date(2026, 1, 25) not in rows


def test_skip_date_without_entry_only_records_skip(night, leader):
    result = cq_schedule.skip_date(date(2026, 2, 1), "Field exercise", leader)
    assert result["shifted"] == 0
    assert ScheduleSkip.objects.filter(date=date(2026, 2, 1)).exists()


def test_skip_and_remove_require_manage_cq(cadet, leader):
    with pytest.raises(Forbidden):
        cq_schedule.skip_date(TODAY, "nope", cadet)
    skip_id = cq_schedule.skip_date(TODAY, "ok", leader)["skipId"]
    with pytest.raises(Forbidden):
        cq_schedule.remove_skip(skip_id, cadet)
    cq_schedule.remove_skip(skip_id, leader)
    assert not ScheduleSkip.objects.exists()

# =========================
# Status and assignments
# =========================

def test_status_transitions(night, leader, cadet):
    entry = night(TODAY)
    assert cq_schedule.start_shift(entry.pk, leader).status == ScheduleStatus.ACTIVE
    assert cq_schedule.complete_shift(entry.pk, leader).status == ScheduleStatus.COMPLETED
    with pytest.raises(ValidationError):
        cq_schedule.update_schedule_status(entry.pk, "paused", leader)
    with pytest.raises(Forbidden):
        cq_schedule.start_shift(entry.pk, cadet)


def test_update_shift_assignment(night, make_person, leader):
    entry = night(TODAY)
    person = make_person()
    cq_schedule.update_shift_assignment(entry.pk, ShiftType.SHIFT2, 1, person, None, leader)
    cq_schedule.update_shift_assignment(entry.pk, ShiftType.SHIFT2, 2, None, "Guest Cadet", leader)
    entry.refresh_from_db()
    assert entry.shift2_person1 == person
    assert entry.shift2_person1_name == person.display_name
    assert entry.shift2_person2 is None
    assert entry.shift2_person2_name == "Guest Cadet"
    assert entry.updated_by == leader

# =========================
# Import
# =========================

CSV = (
    "Date,Day,Shift 1,Shift 2\n"
    "01/20/2026,Tuesday,Alex Carter / Jordan Reyes*,Sam Nguyen / Taylor Brooks\n"
    "2026-01-21,,Morgan Patel / Casey Kim,Riley Osei / Jamie Lopez\n"
    "\n"
)


def test_parse_schedule_csv():
    rows = cq_schedule.parse_schedule_csv(CSV)
    assert len(rows) == 2
    first = rows[0]
    assert first["date"] == "2026-01-20"
    assert first["shift1Person2Name"] == "Jordan Reyes"
    assert first["isPotentialSkipDay"] is True
    assert first["skipDayReason"]
    assert rows[1]["dayOfWeek"] == "Wednesday"
    assert rows[1]["isPotentialSkipDay"] is False


def test_parse_schedule_csv_reports_bad_lines():
    with pytest.raises(ValidationError) as exc:
        cq_schedule.parse_schedule_csv("Date,Day,Shift 1,Shift 2\nsomeday,Tue,A / B,C / D\n")
    assert "line 2" in exc.value.errors
    with pytest.raises(ValidationError):
        cq_schedule.parse_schedule_csv("Date,Day\n")


def test_import_resolves_names_and_upserts(make_person, leader):
    alex = make_person(first="Alex", last="Carter")
    rows = cq_schedule.parse_schedule_csv(CSV)
    assert cq_schedule.import_schedule(rows, leader) == 2

    entry = ScheduleEntry.objects.get(date=TODAY)
    assert entry.shift1_person1 == alex
    assert entry.shift1_person2 is None
    assert entry.shift1_person2_name == "Jordan Reyes"
    assert entry.imported_by == leader

    rows[0]["shift2Person1Name"] = "Alex Carter"
    cq_schedule.import_schedule(rows[:1], leader)
    entry.refresh_from_db()
    assert entry.shift2_person1 == alex
    assert ScheduleEntry.objects.count() == 2


def test_import_with_clear_existing(night, leader):
    night(date(2026, 3, 1))
    cq_schedule.import_schedule(cq_schedule.parse_schedule_csv(CSV), leader, clear_existing=True)
    assert set(ScheduleEntry.objects.values_list("date", flat=True)) == {TODAY, TOMORROW}


def test_import_rejects_bad_dates(leader):
    with pytest.raises(ValidationError):
        cq_schedule.import_schedule([{"date": "20/01/2026"}], leader)
    assert not ScheduleEntry.objects.exists()

# =========================
# Generation
# =========================

@pytest.fixture
def roster(make_person):
    nights = []
    for order in (1, 2):
        people = [make_person() for _ in range(4)]
        seats = [(ShiftType.SHIFT1, 1), (ShiftType.SHIFT1, 2), (ShiftType.SHIFT2, 1), (ShiftType.SHIFT2, 2)]
        for (shift_type, pos), person in zip(seats, people):
            CQRosterEntry.objects.create(order=order, shift_type=shift_type, position=pos,
                                         personnel=person, name=person.display_name)
        nights.append(people)
    return nights


def test_generate_round_robin_with_skips_and_existing(roster, night, leader):
    ScheduleSkip.objects.create(date=date(2026, 2, 2), reason="Holiday")
    night(date(2026, 2, 3))

    result = cq_schedule.generate_schedule(date(2026, 2, 1), 5, actor=leader)

    assert result.created == [date(2026, 2, 1), date(2026, 2, 4), date(2026, 2, 5)]
    assert result.skipped == [date(2026, 2, 2)]
    assert result.existing == [date(2026, 2, 3)]
    # skip does not advance the rotation; the existing night does
    assert ScheduleEntry.objects.get(date=date(2026, 2, 1)).shift1_person1 == roster[0][0]
    assert ScheduleEntry.objects.get(date=date(2026, 2, 4)).shift1_person1 == roster[0][0]
    assert ScheduleEntry.objects.get(date=date(2026, 2, 5)).shift2_person2 == roster[1][3]


def test_generate_needs_roster(db):
    with pytest.raises(InvalidState):
        cq_schedule.generate_schedule(date(2026, 2, 1), 3)


def test_generate_requires_permission_when_actor_given(roster, cadet):
    with pytest.raises(Forbidden):
        cq_schedule.generate_schedule(date(2026, 2, 1), 3, actor=cadet)
    assert cadet.role == Role.USER

from datetime import date, datetime
from io import BytesIO
from zoneinfo import ZoneInfo

import pytest
from icalendar import Calendar
from openpyxl import load_workbook

from companyops.domain.models import ScheduleEntry, ShiftType
from companyops.services import liberty
from companyops.services.exporters.export_ics import export_schedule_ics
from companyops.services.exporters.export_xlsx import export_liberty_xlsx

NY = ZoneInfo("America/New_York")

# =========================
# iCalendar
# =========================

@pytest.fixture
def night(cadet, other_cadet):
    e = ScheduleEntry(date=date(2026, 2, 10), day_of_week="Tuesday",
                      is_potential_skip_day=True, skip_day_reason="Federal holiday")
    e.assign(ShiftType.SHIFT1, 1, cadet)
    e.assign(ShiftType.SHIFT2, 1, other_cadet)
    e.save()
    ScheduleEntry.objects.create(date=date(2026, 2, 11), day_of_week="Wednesday")
    return e


def events(content):
    return {str(ev["summary"]): ev for ev in Calendar.from_ical(content).walk("VEVENT")}


def test_one_event_per_staffed_shift(night):
    evs = events(export_schedule_ics(date(2026, 2, 1), date(2026, 2, 28)))
    assert set(evs) == {"CQ Shift 1: Casey Cadet", "CQ Shift 2: Jordan Reyes"}


def test_shift_two_runs_after_midnight(night):
    evs = events(export_schedule_ics())
    first = evs["CQ Shift 1: Casey Cadet"]
    assert first.decoded("dtstart") == datetime(2026, 2, 10, 20, 0, tzinfo=NY)
    assert first.decoded("dtend") == datetime(2026, 2, 11, 1, 0, tzinfo=NY)

    second = evs["CQ Shift 2: Jordan Reyes"]
    assert second.decoded("dtstart") == datetime(2026, 2, 11, 1, 0, tzinfo=NY)
    assert second.decoded("dtend") == datetime(2026, 2, 11, 6, 0, tzinfo=NY)


def test_event_details(night, cadet):
    ev = events(export_schedule_ics())["CQ Shift 1: Casey Cadet"]
    assert str(ev["uid"]) == f"cq-{night.pk}-shift1@companyops.local"
    assert "Potential skip day: Federal holiday" in str(ev["description"])
    assert str(ev["attendee"]) == f"MAILTO:{cadet.email}"


def test_range_filter(night):
    assert events(export_schedule_ics(date(2026, 3, 1), date(2026, 3, 31))) == {}

# =========================
# Liberty workbook
# =========================

SLOT = {"date": "2026-02-14", "start_time": "09:00", "end_time": "13:00", "locations": ["gym"], "participants": []}


@pytest.fixture
def weekend_requests(cadet, other_cadet, leader):
    approved = liberty.create_liberty_request(
        {"weekend_date": "2026-02-14", "time_slots": [SLOT], "is_driver": True, "passenger_capacity": 3},
        cadet,
    )["request"]
    liberty.approve_liberty_request(approved.pk, leader)
    pending = liberty.create_liberty_request({"weekend_date": "2026-02-14", "locations": ["library"]}, other_cadet)
    return approved, pending["request"]


def load(content):
    return load_workbook(BytesIO(content))


def test_approved_only_by_default(weekend_requests):
    wb = load(export_liberty_xlsx(date(2026, 2, 14)))
    ws = wb["Liberty 2026-02-14"]
    assert [c.value for c in ws[1]][:3] == ["Rank", "Name", "Destination"]
    assert ws.max_row == 2
    assert ws.cell(row=2, column=2).value == "Casey Cadet"
    assert ws.cell(row=2, column=3).value == "Gym"
    assert ws.cell(row=2, column=4).value.date() == date(2026, 2, 14)
    assert ws.cell(row=2, column=7).value == "Yes"
    assert ws.cell(row=2, column=8).value == 3
    assert ws.cell(row=2, column=11).value == "LL"


def test_include_pending(weekend_requests):
    ws = load(export_liberty_xlsx(date(2026, 2, 14), include_pending=True))["Liberty 2026-02-14"]
    names = [ws.cell(row=r, column=2).value for r in range(2, ws.max_row + 1)]
    assert names == ["Casey Cadet", "Jordan Reyes"]


def test_time_slot_sheet(weekend_requests):
    ws = load(export_liberty_xlsx(date(2026, 2, 14)))["Time slots"]
    assert [c.value for c in ws[2]][:5] == ["Casey Cadet", "Sat Morning", "09:00", "13:00", "gym"]

from datetime import date
from io import StringIO

import pytest
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.core.management.base import CommandError

from companyops.domain.models import CQRosterEntry, Role, ScheduleEntry, SettingsKey, ShiftType
from companyops.domain.repositories import SettingsRepository


def run(*args, **kwargs):
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


def test_create_roles(db):
    output = run("create_roles")
    assert set(Group.objects.values_list("name", flat=True)) >= set(Role.values)
    leadership = Group.objects.get(name=Role.CANDIDATE_LEADERSHIP)
    assert leadership.permissions.filter(codename="change_swaprequest").exists()
    assert not Group.objects.get(name=Role.USER).permissions.filter(codename="change_libertyrequest").exists()
    assert "Roles created/updated." in output


def test_generate_command(make_person):
    person = make_person()
    for shift_type in ShiftType.values:
        for pos in (1, 2):
            CQRosterEntry.objects.create(order=1, shift_type=shift_type, position=pos,
                                         personnel=person, name=person.display_name)
    output = run("generate_cq_schedule", "--start", "2026-03-01", "--days", "3")
    assert "3 created" in output
    assert ScheduleEntry.objects.filter(date__range=(date(2026, 3, 1), date(2026, 3, 3))).count() == 3


def test_generate_command_without_roster(db):
    with pytest.raises(CommandError, match="No CQ roster found"):
        run("generate_cq_schedule", "--start", "2026-03-01")


def test_generate_command_bad_start(db):
    with pytest.raises(CommandError):
        run("generate_cq_schedule", "--start", "March 1st")


def test_import_command(admin_person, tmp_path):
    path = tmp_path / "cq.csv"
    path.write_text(
        "Date,Day,Shift 1,Shift 2\n"
        "2026-03-02,Monday,Alex Carter / Jordan Reyes,Sam Nguyen / Taylor Brooks\n",
        encoding="utf-8",
    )
    output = run("import_cq_schedule", str(path))
    assert "[import] 1 row(s)" in output
    assert ScheduleEntry.objects.get(date=date(2026, 3, 2)).shift2_person1_name == "Sam Nguyen"


def test_import_command_needs_admin(db, tmp_path):
    path = tmp_path / "cq.csv"
    path.write_text("Date,Day,Shift 1,Shift 2\n", encoding="utf-8")
    with pytest.raises(CommandError, match="admin"):
        run("import_cq_schedule", str(path))


def test_trigger_cq_reminder_sync(db):
    output = run("trigger_task", "cq_reminder", "--sync", "--date", "2026-03-02")
    assert "[sync] cq_reminder -> 0" in output


def test_seed_demo_is_idempotent(db):
    first = run("seed_demo")
    assert "personnel created=8, roster seats created=8, uniforms=5" in first
    assert CQRosterEntry.objects.filter(order=2, shift_type=ShiftType.SHIFT2, position=2).exists()
    assert SettingsRepository.exists(SettingsKey.WEATHER_RULES)

    second = run("seed_demo")
    assert "already exists" in second
    assert "personnel created=0, roster seats created=0, uniforms=5" in second

import pytest

from companyops import apps
from companyops.apps import companyops_settings_check


@pytest.fixture
def overrides(monkeypatch):
    values = {}
    monkeypatch.setattr(apps, "_get_setting", lambda name, default=None: values.get(name, default))
    return values


def ids(errors):
    return [e.id for e in errors]


def test_default_settings_pass():
    assert companyops_settings_check(None) == []


def test_bad_zone_and_clock(overrides):
    overrides.update(TIME_ZONE="Mars/Olympus_Mons", CQ_SHIFT2_END="6am")
    assert ids(companyops_settings_check(None)) == ["companyops.E001", "companyops.E005"]


def test_out_of_range_numbers(overrides):
    overrides.update(CQ_REMINDER_HOUR=24, LIBERTY_DEADLINE_DAY=True)
    assert ids(companyops_settings_check(None)) == ["companyops.E007", "companyops.E008"]

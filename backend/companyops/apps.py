from __future__ import annotations

from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.apps import AppConfig
from django.core.checks import Error, Tags, register

from companyops.utils import _get_setting, _parse_hhmm

CLOCK_SETTINGS = (
    ("CQ_SHIFT1_START", "20:00", "companyops.E002"),
    ("CQ_SHIFT1_END", "01:00", "companyops.E003"),
    ("CQ_SHIFT2_START", "01:00", "companyops.E004"),
    ("CQ_SHIFT2_END", "06:00", "companyops.E005"),
    ("LIBERTY_DEADLINE_TIME", "23:59", "companyops.E006"),
)

# =========================
# System checks
# =========================

def _int_in_range(value, low: int, high: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


@register(Tags.compatibility)
def companyops_settings_check(app_configs, **kwargs) -> List[Error]:
    """Reject a bad time zone, shift clock, reminder hour or deadline day at startup."""
    errors: List[Error] = []

    zone = _get_setting("TIME_ZONE", "UTC")
    try:
        ZoneInfo(str(zone))
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(Error(f"TIME_ZONE is not a known IANA time zone: {zone!r}", id="companyops.E001"))

    for name, default, error_id in CLOCK_SETTINGS:
        value = _get_setting(name, default)
        try:
            _parse_hhmm(value)
        except ValueError:
            errors.append(Error(f"{name} must be HH:MM (e.g. '20:00'), got {value!r}", id=error_id))

    if not _int_in_range(_get_setting("CQ_REMINDER_HOUR", 16), 0, 23):
        errors.append(Error("CQ_REMINDER_HOUR must be an integer between 0 and 23.", id="companyops.E007"))
    if not _int_in_range(_get_setting("LIBERTY_DEADLINE_DAY", 2), 0, 6):
        errors.append(Error("LIBERTY_DEADLINE_DAY must be 0 (Sunday) to 6 (Saturday).", id="companyops.E008"))

    return errors

# =========================
# AppConfig
# =========================

class CompanyOpsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "companyops"
    verbose_name = "Company Operations"

    def ready(self):
        # audit, role sync, notification and subscription receivers
        from .domain import signals  # noqa: F401

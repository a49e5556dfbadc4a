from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from companyops.domain.errors import DomainError
from companyops.services import notifications
from companyops.services import weather as weather_service
from companyops.utils import _parse_iso_date

log = logging.getLogger(__name__)

# =========================
# Push notifications
# =========================

@shared_task
def notify_pass_request_created(request_id: int) -> int:
    """Push a new liberty request to leadership.

    Returns:
        int: Number of tokens the push service accepted.
    """
    response = notifications.notify_pass_request_created(request_id)
    return response.success_count if response else 0


@shared_task
def notify_recommendation_created(rec_id: int) -> int:
    response = notifications.notify_recommendation_created(rec_id)
    return response.success_count if response else 0


@shared_task
def notify_swap_request_created(swap_id: int) -> int:
    response = notifications.notify_swap_request_created(swap_id)
    return response.success_count if response else 0

# =========================
# Scheduled work
# =========================

@shared_task
def scheduled_weather_check() -> Dict[str, Any]:
    """Beat runs this every minute; it only does work at a configured UOTD slot time."""
    try:
        result = weather_service.scheduled_weather_check()
    except DomainError as exc:
        log.warning("Scheduled weather check failed: %s", exc)
        return {"success": False, "message": str(exc)}
    if result.get("processed"):
        log.info("Scheduled weather check handled %d slot(s)", result["processed"])
    return result


@shared_task
def daily_cq_reminder(target: Optional[str] = None) -> int:
    """Email tonight's CQ personnel.

    Args:
        target (Optional[str]): ISO date to remind for instead of today.

    Returns:
        int: Number of reminders sent.
    """
    day = _parse_iso_date(target) if target else None
    try:
        return notifications.send_cq_reminders(day)
    except Exception:  # pragma: no cover
        log.exception("daily_cq_reminder failed for %s", target or "today")
        return 0

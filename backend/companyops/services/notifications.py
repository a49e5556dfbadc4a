from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction

from companyops.domain.models import (
    LibertyRequest,
    Personnel,
    RecommendationStatus,
    RequestStatus,
    ScheduleEntry,
    SwapRequest,
    WeatherRecommendation,
)
from companyops.domain.repositories import PersonnelRepository, ScheduleRepository, SettingsRepository
from companyops.domain.roles import CQ_MANAGER_ROLES, PASS_APPROVER_ROLES, UOTD_APPROVER_ROLES
from companyops.services import timezone as tz
from companyops.services.cq_schedule import shift_times
from companyops.services.push import BatchResponse, PushMessage, get_backend

log = logging.getLogger(__name__)

ICON = "/icon-192x192.png"
BRAND_COLOR = "#4a5d23"
LEADERSHIP_CHANNEL = "wots_leadership_notifications"
ADMIN_CHANNEL = "wots_admin_notifications"

# =========================
# Recipients and tokens
# =========================

def collect_tokens(roles: Sequence[str], exclude_id: Optional[int] = None) -> Tuple[List[Personnel], List[str]]:
    """Active people holding one of ``roles`` and their push tokens.

    Args:
        roles (Sequence[str]): Approver-eligible roles.
        exclude_id (Optional[int], optional): Personnel never notified, e.g. the requester.

    Returns:
        Tuple[List[Personnel], List[str]]: Recipients and their de-duplicated tokens.
    """
    people = [p for p in PersonnelRepository.with_roles(roles) if p.pk != exclude_id]
    tokens: List[str] = []
    for person in people:
        for token in person.fcm_tokens or []:
            if isinstance(token, str) and token and token not in tokens:
                tokens.append(token)
    return people, tokens


def prune_invalid_tokens(people: Iterable[Personnel], tokens: Sequence[str], response: BatchResponse) -> int:
    """Drop tokens the push service reported as permanently invalid, in one transaction.

    Tokens that failed for other reasons are kept for the next attempt.

    Returns:
        int: Number of personnel records updated.
    """
    invalid = {tokens[i] for i, r in enumerate(response.responses) if r.token_invalid}
    if not invalid:
        return 0
    log.info("Removing %d invalid push token(s)", len(invalid))
    updated = 0
    with transaction.atomic():
        for person in people:
            current = person.fcm_tokens or []
            valid = [t for t in current if t not in invalid]
            if len(valid) != len(current):
                person.fcm_tokens = valid
                person.save(update_fields=["fcm_tokens", "updated_at"])
                updated += 1
    return updated


def _dispatch(people: List[Personnel], tokens: List[str], message: PushMessage) -> Optional[BatchResponse]:
    response = get_backend().send_multicast(message)
    log.info("Push sent: %d ok, %d failed (%s)", response.success_count, response.failure_count, message.data.get("type"))
    if response.failure_count:
        prune_invalid_tokens(people, tokens, response)
    return response


def _link(path: str) -> str:
    return f"{getattr(settings, 'PUSH_APP_LINK', '').rstrip('/')}{path}"


def _hhmm(moment: Optional[datetime], tz_name: str) -> str:
    return tz.local_now(tz_name, moment).strftime("%H%M")

# =========================
# Pass / liberty requests
# =========================

def build_pass_request_message(req: LibertyRequest, tokens: List[str], tz_name: str,
                               now: Optional[datetime] = None) -> PushMessage:
    companions = req.companions or []
    count = len(companions)
    companion_text = f" (+{count} companion{'s' if count > 1 else ''})" if count else ""
    title = f"[{_hhmm(now, tz_name)}] Pass Request: {req.requester_name}{companion_text}"

    parts = []
    if req.destination:
        parts.append(f"Destination: {req.destination}")
    if req.return_time:
        parts.append(f"Expected return: {req.return_time.strftime('%H%M')}")
    if companions:
        parts.append("With: " + ", ".join(c.get("name") or "" for c in companions))
    if req.notes:
        parts.append(f"Notes: {req.notes}")
    body = "\n".join(parts) or "Tap to review"

    tag = f"pass-req-{req.pk}"
    return PushMessage(
        title=title,
        body=body,
        tokens=tokens,
        data={
            "type": "pass_approval_request",
            "requestId": str(req.pk),
            "requesterName": req.requester_name or "",
            "destination": req.destination or "",
            "title": title,
            "body": body,
        },
        webpush={
            "notification": {
                "icon": ICON,
                "badge": ICON,
                "tag": tag,
                "require_interaction": True,
                "actions": [
                    {"action": "approve", "title": "✓ Approve"},
                    {"action": "reject", "title": "✗ Reject"},
                ],
            },
            "link": _link(f"/?action=review-pass&requestId={req.pk}"),
        },
        apns={"aps": {"badge": 1, "sound": "default"}},
        android={
            "priority": "high",
            "notification": {"icon": "ic_notification", "color": BRAND_COLOR,
                             "channel_id": LEADERSHIP_CHANNEL, "tag": tag},
        },
    )


def notify_pass_request_created(request_id: int, now: Optional[datetime] = None) -> Optional[BatchResponse]:
    """Push a new pending liberty request to leadership, never to the requester.

    Failures are logged and swallowed so they cannot affect the request itself.

    Returns:
        Optional[BatchResponse]: None when nothing was sent.
    """
    try:
        req = LibertyRequest.objects.filter(pk=request_id).first()
        if req is None:
            log.warning("Pass notification: request %s no longer exists", request_id)
            return None
        if req.status != RequestStatus.PENDING:
            log.info("Pass notification: request %s is %s, skipping", request_id, req.status)
            return None
        people, tokens = collect_tokens(PASS_APPROVER_ROLES, exclude_id=req.requester_id)
        if not tokens:
            log.info("Pass notification: no push tokens for leadership")
            return None
        zone = tz.configured_timezone(SettingsRepository.app_config())
        return _dispatch(people, tokens, build_pass_request_message(req, tokens, zone, now))
    except Exception:
        log.exception("Error sending leadership notifications for request %s", request_id)
        return None

# =========================
# Weather recommendations
# =========================

def notify_recommendation_created(rec_id: int, now: Optional[datetime] = None) -> Optional[BatchResponse]:
    try:
        rec = WeatherRecommendation.objects.filter(pk=rec_id).first()
        if rec is None or rec.status != RecommendationStatus.PENDING:
            return None
        people, tokens = collect_tokens(UOTD_APPROVER_ROLES)
        if not tokens:
            log.info("Recommendation notification: no push tokens for approvers")
            return None
        zone = tz.configured_timezone(SettingsRepository.app_config())
        weather = rec.weather or {}
        temp = weather.get("temperature")
        temp_display = f"{round(temp)}°" if isinstance(temp, (int, float)) else "--°"
        conditions = weather.get("weatherMain") or "Clear"
        title = f"[{tz.format_timestamp_for_notification(now, zone)}] Weather UOTD Recommendation"
        body = f"{temp_display} {conditions} - Uniform #{rec.uniform_number} recommended. Tap to review."
        tag = f"rec-{rec.pk}"
        message = PushMessage(
            title=title,
            body=body,
            tokens=tokens,
            data={
                "type": "weather_recommendation",
                "recommendationId": str(rec.pk),
                "targetSlot": rec.target_slot,
                "uniformNumber": rec.uniform_number or "",
                "title": title,
                "body": body,
            },
            webpush={
                "notification": {"icon": ICON, "badge": ICON, "tag": tag, "require_interaction": True},
                "link": _link("/"),
            },
            apns={"aps": {"badge": 1, "sound": "default"}},
            android={
                "priority": "high",
                "notification": {"icon": "ic_notification", "color": BRAND_COLOR,
                                 "channel_id": ADMIN_CHANNEL, "tag": tag},
            },
        )
        return _dispatch(people, tokens, message)
    except Exception:
        log.exception("Error sending recommendation notifications for %s", rec_id)
        return None

# =========================
# CQ swaps and reminders
# =========================

def notify_swap_request_created(swap_id: int, now: Optional[datetime] = None) -> Optional[BatchResponse]:
    try:
        swap = SwapRequest.objects.filter(pk=swap_id).first()
        if swap is None or swap.status != RequestStatus.PENDING:
            return None
        people, tokens = collect_tokens(CQ_MANAGER_ROLES, exclude_id=swap.requester_id)
        if not tokens:
            return None
        zone = tz.configured_timezone(SettingsRepository.app_config())
        title = f"[{_hhmm(now, zone)}] CQ Swap Request: {swap.requester_name}"
        shift_label = swap.get_current_shift_type_display()
        parts = [
            f"Date: {swap.schedule_date:%a %b %d}" if swap.schedule_date else "",
            f"{shift_label}, position {swap.current_position}",
            f"Proposed: {swap.proposed_personnel_name}",
            f"Reason: {swap.reason}" if swap.reason else "",
        ]
        body = "\n".join(p for p in parts if p)
        tag = f"swap-req-{swap.pk}"
        message = PushMessage(
            title=title,
            body=body,
            tokens=tokens,
            data={"type": "cq_swap_request", "swapId": str(swap.pk), "title": title, "body": body},
            webpush={
                "notification": {"icon": ICON, "badge": ICON, "tag": tag},
                "link": _link(f"/?action=review-swap&swapId={swap.pk}"),
            },
            apns={"aps": {"badge": 1, "sound": "default"}},
            android={
                "priority": "high",
                "notification": {"icon": "ic_notification", "color": BRAND_COLOR,
                                 "channel_id": LEADERSHIP_CHANNEL, "tag": tag},
            },
        )
        return _dispatch(people, tokens, message)
    except Exception:
        log.exception("Error sending swap notifications for %s", swap_id)
        return None


def cq_reminders_for(entry: ScheduleEntry) -> Dict[str, str]:
    """Email address to reminder line for everyone on ``entry`` who has an address."""
    config = SettingsRepository.app_config()
    lines: Dict[str, str] = {}
    for shift_type, position, person_id, name in entry.slots():
        if not person_id:
            continue
        person = PersonnelRepository.find(person_id)
        if person is None or not person.email:
            continue
        times = shift_times(shift_type, config)
        partner = entry.partner_name(shift_type, position) or "nobody"
        lines[person.email.lower()] = (
            f"{name or person.display_name}: CQ shift {shift_type[-1]} ({times['start']}-{times['end']}) "
            f"on {entry.date:%a %b %d}, with {partner}."
        )
    return lines


def send_cq_reminders(target: Optional[date] = None, now: Optional[datetime] = None) -> int:
    """Email tonight's CQ personnel. Returns how many reminders went out."""
    zone = tz.configured_timezone(SettingsRepository.app_config())
    day = target or tz.today_in(zone, now)
    entry = ScheduleRepository.for_date(day)
    if entry is None:
        log.info("CQ reminder: no schedule entry for %s", day)
        return 0
    sent = 0
    for email, line in cq_reminders_for(entry).items():
        sent += send_mail(
            f"CQ duty reminder for {day:%a %b %d}",
            line,
            settings.DEFAULT_FROM_EMAIL,
            [email],
            fail_silently=True,
        )
    log.info("CQ reminder: %d email(s) for %s", sent, day)
    return sent

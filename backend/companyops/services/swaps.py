from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from django.db import transaction
from django.utils import timezone

from companyops.domain.errors import Duplicate, Forbidden, InvalidState, ValidationError
from companyops.domain.forms import SwapRequestForm
from companyops.domain.models import Personnel, RequestStatus, ScheduleEntry, SwapRequest
from companyops.domain.repositories import (
    PersonnelRepository,
    ScheduleRepository,
    SwapRequestRepository,
)
from companyops.domain.roles import Permission, actor_has, require_permission

log = logging.getLogger(__name__)

# =========================
# Create / cancel
# =========================

def create_swap_request(data: Mapping[str, Any], requester: Personnel) -> SwapRequest:
    """File a request to hand one of the requester's CQ slots to someone else.

    Args:
        data (Mapping[str, Any]): schedule_id, shift_type, position,
            proposed_personnel_id and/or proposed_personnel_name, reason.
        requester (Personnel): Must currently hold the slot.

    Raises:
        ValidationError: Malformed input.
        NotFound: The schedule entry does not exist.
        Forbidden: The requester is not in that slot.
        InvalidState: The night is no longer scheduled.
        Duplicate: The slot already has a pending request (``existing``).
    """
    form = SwapRequestForm(data=data)
    if not form.is_valid():
        raise ValidationError.from_form(form)
    cd = form.cleaned_data

    entry = ScheduleRepository.get(cd["schedule_id"])
    shift_type, position = cd["shift_type"], cd["position"]
    if entry.holder_id(shift_type, position) != requester.pk:
        raise Forbidden("You can only request swaps for your own shifts")
    if entry.status != "scheduled":
        raise InvalidState("Can only swap shifts that have not started")
    if cd.get("proposed_personnel_id") == requester.pk:
        raise ValidationError({"proposed_personnel_id": ["Pick someone other than yourself."]})
    pending = SwapRequestRepository.pending_for_slot(entry, shift_type, position).first()
    if pending is not None:
        raise Duplicate("A swap request for this shift is already pending", existing=pending)

    swap = SwapRequest.objects.create(
        requester=requester,
        requester_name=requester.display_name,
        schedule=entry,
        schedule_date=entry.date,
        current_shift_type=shift_type,
        current_position=position,
        current_person_name=entry.holder_name(shift_type, position),
        proposed_personnel=PersonnelRepository.find(cd.get("proposed_personnel_id")),
        proposed_personnel_name=cd["proposed_personnel_name"],
        reason=cd.get("reason") or "",
    )
    log.info("Swap request %s: %s %s/%s -> %s", swap.pk, entry.date, shift_type, position, swap.proposed_personnel_name)
    return swap


def cancel_swap_request(swap_id: int, actor: Personnel) -> SwapRequest:
    """Withdraw a pending request. Only its requester or a CQ manager may do so."""
    with transaction.atomic():
        swap = SwapRequestRepository.get(swap_id, for_update=True)
        if swap.requester_id != actor.pk and not actor_has(actor, Permission.MANAGE_CQ):
            raise Forbidden("You can only cancel your own requests")
        if swap.status != RequestStatus.PENDING:
            raise InvalidState("Can only cancel pending requests")
        swap.status = RequestStatus.CANCELLED
        swap.cancelled_at = timezone.now()
        swap.save(update_fields=["status", "cancelled_at", "updated_at"])
    return swap

# =========================
# Approve / reject
# =========================

def _apply_to_schedule(swap: SwapRequest, actor: Personnel) -> ScheduleEntry:
    entry = ScheduleEntry.objects.select_for_update().filter(pk=swap.schedule_id).first()
    if entry is None:
        raise InvalidState("Schedule not found")

    holder = entry.holder_id(swap.current_shift_type, swap.current_position)
    if holder != swap.requester_id:
        # concurrent approvals on one slot are last-writer-wins
        log.warning(
            "Swap %s: slot %s/%s on %s is now held by %s, not requester %s; applying anyway",
            swap.pk, swap.current_shift_type, swap.current_position, entry.date, holder, swap.requester_id,
        )

    fields = entry.assign(
        swap.current_shift_type, swap.current_position, swap.proposed_personnel, swap.proposed_personnel_name
    )
    entry.updated_by = actor
    entry.save(update_fields=fields + ["updated_by", "updated_at"])
    return entry


def _mark_approved(swap: SwapRequest, actor: Personnel) -> None:
    swap.status = RequestStatus.APPROVED
    swap.approved_by = actor
    swap.approved_by_name = actor.display_name
    swap.approved_at = timezone.now()
    swap.save(update_fields=["status", "approved_by", "approved_by_name", "approved_at", "updated_at"])


def approve_swap_request(swap_id: int, actor: Personnel) -> SwapRequest:
    """Reassign the slot and resolve the request as one unit.

    Both writes sit in one transaction: either the schedule names the proposed
    person and the request is approved, or neither changed.

    Raises:
        Forbidden: The actor may not manage CQ operations.
        NotFound: Unknown request.
        InvalidState: Not pending, or the schedule entry is gone.
    """
    require_permission(actor, Permission.MANAGE_CQ_OPERATIONS)
    with transaction.atomic():
        swap = SwapRequestRepository.get(swap_id, for_update=True)
        if swap.status != RequestStatus.PENDING:
            raise InvalidState("Request is no longer pending")
        _apply_to_schedule(swap, actor)
        _mark_approved(swap, actor)
    log.info("Swap %s approved by %s", swap.pk, actor.display_name)
    return swap


def reject_swap_request(swap_id: int, actor: Personnel, reason: str = "") -> SwapRequest:
    require_permission(actor, Permission.MANAGE_CQ_OPERATIONS)
    with transaction.atomic():
        swap = SwapRequestRepository.get(swap_id, for_update=True)
        if swap.status != RequestStatus.PENDING:
            raise InvalidState("Request is no longer pending")
        swap.status = RequestStatus.REJECTED
        swap.rejected_by = actor
        swap.rejected_by_name = actor.display_name
        swap.rejected_at = timezone.now()
        swap.rejection_reason = reason or None
        swap.save(update_fields=[
            "status", "rejected_by", "rejected_by_name", "rejected_at", "rejection_reason", "updated_at",
        ])
    return swap

# =========================
# Listing
# =========================

def list_my_swap_requests(person: Personnel) -> List[SwapRequest]:
    return list(SwapRequestRepository.for_requester(person).select_related("schedule"))


def list_pending_swap_requests(actor: Personnel) -> List[SwapRequest]:
    require_permission(actor, Permission.MANAGE_CQ_OPERATIONS)
    return list(SwapRequestRepository.pending().select_related("schedule"))


def pending_swap_count() -> int:
    return SwapRequestRepository.pending_count()


def swap_summary(swap: SwapRequest) -> Dict[str, Any]:
    return {
        "id": swap.pk,
        "status": swap.status,
        "scheduleDate": swap.schedule_date.isoformat() if swap.schedule_date else None,
        "shift": f"{swap.current_shift_type}/{swap.current_position}",
        "from": swap.current_person_name,
        "to": swap.proposed_personnel_name,
    }

from datetime import date

import pytest

from companyops.domain.errors import Duplicate, Forbidden, InvalidState, NotFound, ValidationError
from companyops.domain.models import RequestStatus, ScheduleEntry, ScheduleStatus, ShiftType, SwapRequest
from companyops.services import swaps


@pytest.fixture
def entry(db, cadet, other_cadet):
    e = ScheduleEntry(date=date(2026, 2, 10), day_of_week="Tuesday")
    e.assign(ShiftType.SHIFT1, 1, cadet)
    e.assign(ShiftType.SHIFT1, 2, other_cadet)
    e.save()
    return e


@pytest.fixture
def substitute(make_person):
    return make_person(first="Sam", last="Nguyen")


def request_data(entry, substitute, **extra):
    data = {
        "schedule_id": entry.pk,
        "shift_type": ShiftType.SHIFT1,
        "position": 1,
        "proposed_personnel_id": substitute.pk,
        "reason": "Range day",
    }
    data.update(extra)
    return data

# =========================
# Create / cancel
# =========================

def test_create_swap_request(entry, cadet, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    assert swap.status == RequestStatus.PENDING
    assert swap.schedule_date == entry.date
    assert swap.current_person_name == cadet.display_name
    assert swap.proposed_personnel == substitute
    assert swap.proposed_personnel_name == substitute.display_name
    assert swaps.pending_swap_count() == 1


def test_free_text_substitute(entry, cadet):
    swap = swaps.create_swap_request(
        {"schedule_id": entry.pk, "shift_type": "shift1", "position": 1, "proposed_personnel_name": "Visiting Cadet"},
        cadet,
    )
    assert swap.proposed_personnel is None
    assert swap.proposed_personnel_name == "Visiting Cadet"


def test_only_slot_holder_may_request(entry, other_cadet, substitute):
    with pytest.raises(Forbidden):
        swaps.create_swap_request(request_data(entry, substitute), other_cadet)


def test_started_night_cannot_be_swapped(entry, cadet, substitute):
    entry.status = ScheduleStatus.ACTIVE
    entry.save()
    with pytest.raises(InvalidState):
        swaps.create_swap_request(request_data(entry, substitute), cadet)


def test_cannot_propose_self_or_nobody(entry, cadet):
    with pytest.raises(ValidationError):
        swaps.create_swap_request(request_data(entry, cadet), cadet)
    with pytest.raises(ValidationError):
        swaps.create_swap_request({"schedule_id": entry.pk, "shift_type": "shift1", "position": 1}, cadet)


def test_one_pending_request_per_slot(entry, cadet, substitute):
    first = swaps.create_swap_request(request_data(entry, substitute), cadet)
    with pytest.raises(Duplicate) as exc:
        swaps.create_swap_request(request_data(entry, substitute), cadet)
    assert exc.value.existing == first


def test_unknown_schedule(db, cadet, substitute):
    with pytest.raises(NotFound):
        swaps.create_swap_request(
            {"schedule_id": 999, "shift_type": "shift1", "position": 1, "proposed_personnel_id": substitute.pk}, cadet
        )


def test_cancel_by_requester_or_manager(entry, cadet, other_cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    with pytest.raises(Forbidden):
        swaps.cancel_swap_request(swap.pk, other_cadet)
    assert swaps.cancel_swap_request(swap.pk, cadet).status == RequestStatus.CANCELLED
    with pytest.raises(InvalidState):
        swaps.cancel_swap_request(swap.pk, leader)

# =========================
# Approve / reject
# =========================

def test_approve_reassigns_slot(entry, cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    approved = swaps.approve_swap_request(swap.pk, leader)

    assert approved.status == RequestStatus.APPROVED
    assert approved.approved_by == leader
    assert approved.approved_by_name == leader.display_name
    entry.refresh_from_db()
    assert entry.shift1_person1 == substitute
    assert entry.shift1_person1_name == substitute.display_name
    assert entry.updated_by == leader


def test_approve_requires_cq_operations(entry, cadet, other_cadet, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    with pytest.raises(Forbidden):
        swaps.approve_swap_request(swap.pk, other_cadet)


def test_approve_twice_fails(entry, cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    swaps.approve_swap_request(swap.pk, leader)
    with pytest.raises(InvalidState):
        swaps.approve_swap_request(swap.pk, leader)


def test_failed_approval_leaves_schedule_untouched(entry, cadet, leader, substitute, monkeypatch):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)

    def boom(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(swaps, "_mark_approved", boom)
    with pytest.raises(RuntimeError):
        swaps.approve_swap_request(swap.pk, leader)

    entry.refresh_from_db()
    swap.refresh_from_db()
    assert entry.shift1_person1 == cadet
    assert swap.status == RequestStatus.PENDING


def test_approve_when_holder_changed_still_applies(entry, cadet, other_cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    entry.assign(ShiftType.SHIFT1, 1, other_cadet)
    entry.save()
    swaps.approve_swap_request(swap.pk, leader)
    entry.refresh_from_db()
    assert entry.shift1_person1 == substitute


def test_reject(entry, cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    rejected = swaps.reject_swap_request(swap.pk, leader, "Need you that night")
    assert rejected.status == RequestStatus.REJECTED
    assert rejected.rejection_reason == "Need you that night"
    entry.refresh_from_db()
    assert entry.shift1_person1 == cadet

# =========================
# Listing
# =========================

def test_listing_and_summary(entry, cadet, leader, substitute):
    swap = swaps.create_swap_request(request_data(entry, substitute), cadet)
    assert [s.pk for s in swaps.list_my_swap_requests(cadet)] == [swap.pk]
    assert [s.pk for s in swaps.list_pending_swap_requests(leader)] == [swap.pk]
    with pytest.raises(Forbidden):
        swaps.list_pending_swap_requests(cadet)
    summary = swaps.swap_summary(swap)
    assert summary["shift"] == "shift1/1"
    assert summary["scheduleDate"] == "2026-02-10"
    assert SwapRequest.objects.count() == 1

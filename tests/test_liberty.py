from datetime import date, datetime, time, timezone as dt_timezone

import pytest

from companyops.domain.errors import CapacityExceeded, Forbidden, InvalidState, NotFound, ValidationError
from companyops.domain.models import JoinStatus, LibertyRequest, RequestStatus
from companyops.services import liberty

WEEKEND = "2026-02-14"


def slot(start="10:00", end="14:00", day=WEEKEND, locations=("gym", "px"), participants=()):
    return {
        "date": day,
        "start_time": start,
        "end_time": end,
        "locations": list(locations),
        "participants": list(participants),
    }


def payload(**extra):
    data = {
        "weekend_date": WEEKEND,
        "time_slots": [slot()],
        "contact_number": "555-0100",
        "purpose": "Errands",
    }
    data.update(extra)
    return data


@pytest.fixture
def pass_request(cadet):
    return liberty.create_liberty_request(payload(), cadet)["request"]

# =========================
# Display helpers
# =========================

def test_destination_labels():
    assert liberty.build_destination_string(["gym", "bx_commissary"]) == "Gym, BX/Commissary"
    assert liberty.build_destination_string(["other"], "Grandma's house") == "Grandma's house"
    assert liberty.build_destination_string(["other"]) == "Other"
    assert liberty.build_destination_string([]) == ""


def test_time_slots_destination_dedupes_locations():
    slots = [slot(locations=["gym"]), slot(start="15:00", end="18:00", locations=["gym", "library"])]
    assert liberty.build_time_slots_destination(slots) == "Gym, Library"
    assert liberty.build_time_slots_destination([]) == ""


@pytest.mark.parametrize("start,label", [
    ("09:00", "Sat Morning"),
    ("12:00", "Sat Afternoon"),
    ("17:30", "Sat Evening"),
])
def test_time_slot_label(start, label):
    assert liberty.time_slot_label(slot(start=start)) == label


def test_time_slot_label_empty():
    assert liberty.time_slot_label(None) == ""
    assert liberty.time_slot_label({"start_time": "10:00"}) == ""


def test_approver_initials(leader):
    assert liberty.approver_initials(leader) == "LL"
    assert liberty.approver_initials(None, "Morgan de Vries") == "MD"
    assert liberty.approver_initials(None, "") == ""

# =========================
# Create
# =========================

def test_create_request_derives_destination_and_window(cadet):
    result = liberty.create_liberty_request(
        payload(time_slots=[slot(), slot(start="15:00", end="19:30", day="2026-02-15", locations=["library"])]),
        cadet,
    )
    assert result["success"] is True
    req = result["request"]
    assert req.status == RequestStatus.PENDING
    assert req.requester_name == cadet.display_name
    assert req.weekend_date == date(2026, 2, 14)
    assert req.locations == ["gym", "px", "library"]
    assert req.destination == "Gym, PX, Library"
    assert req.departure_date == date(2026, 2, 14)
    assert req.departure_time == time(10, 0)
    assert req.return_date == date(2026, 2, 15)
    assert req.return_time == time(19, 30)
    assert req.passenger_capacity == 0


def test_create_with_locations_only(cadet):
    req = liberty.create_liberty_request(
        payload(time_slots=[], locations=["other"], custom_location="  Library annex "),
        cadet,
    )["request"]
    assert req.destination == "Library annex"
    assert req.time_slots == []
    assert req.departure_date is None


def test_weekend_date_must_be_saturday(cadet):
    with pytest.raises(ValidationError) as exc:
        liberty.create_liberty_request(payload(weekend_date="2026-02-13"), cadet)
    assert "weekend_date" in exc.value.errors


def test_other_location_needs_description(cadet):
    with pytest.raises(ValidationError) as exc:
        liberty.create_liberty_request(payload(time_slots=[], locations=["other"]), cadet)
    assert "custom_location" in exc.value.errors


def test_slot_outside_weekend_rejected(cadet):
    with pytest.raises(ValidationError):
        liberty.create_liberty_request(payload(time_slots=[slot(day="2026-02-20")]), cadet)


def test_nothing_chosen_rejected(cadet):
    with pytest.raises(ValidationError):
        liberty.create_liberty_request(payload(time_slots=[]), cadet)


def test_duplicate_weekend_is_signalled(cadet, pass_request):
    result = liberty.create_liberty_request(payload(), cadet)
    assert result["success"] is False
    assert result["isDuplicate"] is True
    assert result["existingRequest"] == pass_request
    assert LibertyRequest.objects.filter(requester=cadet).count() == 1


def test_force_submit_supersedes_existing(cadet, pass_request):
    result = liberty.create_liberty_request(payload(force_submit=True, purpose="Haircut"), cadet)
    assert result["success"] is True
    pass_request.refresh_from_db()
    assert pass_request.status == RequestStatus.CANCELLED
    assert pass_request.cancel_reason == liberty.SUPERSEDED_REASON
    assert LibertyRequest.objects.filter(requester=cadet, status=RequestStatus.PENDING).count() == 1


def test_rejected_request_does_not_block_resubmission(cadet, leader, pass_request):
    liberty.reject_liberty_request(pass_request.pk, leader, "Missing info")
    assert liberty.create_liberty_request(payload(), cadet)["success"] is True


def test_cannot_be_own_companion(cadet):
    with pytest.raises(ValidationError):
        liberty.create_liberty_request(payload(companions=[cadet.as_participant()]), cadet)


def test_string_id_for_self_is_caught(cadet):
    with pytest.raises(ValidationError) as exc:
        liberty.create_liberty_request(payload(companions=[{"id": str(cadet.pk)}]), cadet)
    assert "companions" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        liberty.create_liberty_request(payload(time_slots=[slot(participants=[{"id": str(cadet.pk)}])]), cadet)
    assert "time_slots" in exc.value.errors


def test_people_ids_stored_as_integers(cadet, other_cadet):
    req = liberty.create_liberty_request(
        payload(companions=[{"id": f" {other_cadet.pk} ", "name": "Jordan Reyes"}]), cadet
    )["request"]
    assert req.companions[0]["id"] == other_cadet.pk


@pytest.mark.parametrize("bad_id", ["abc", True, -3, 1.5])
def test_non_integer_people_ids_rejected(cadet, bad_id):
    with pytest.raises(ValidationError) as exc:
        liberty.create_liberty_request(payload(companions=[{"id": bad_id}]), cadet)
    assert exc.value.errors["companions"] == ["Companions id must be an integer."]


def test_same_participant_twice_rejected(cadet, other_cadet):
    twice = [{"id": other_cadet.pk}, {"id": str(other_cadet.pk)}]
    with pytest.raises(ValidationError):
        liberty.create_liberty_request(payload(time_slots=[slot(participants=twice)]), cadet)


def test_join_slot_already_listed_by_string_id(cadet, other_cadet):
    prefilled = slot(participants=[{"id": str(other_cadet.pk), "name": "Jordan Reyes"}])
    req = liberty.create_liberty_request(payload(time_slots=[prefilled]), cadet)["request"]
    with pytest.raises(InvalidState):
        liberty.join_time_slot(req.pk, 0, other_cadet)
    req.refresh_from_db()
    assert [p["id"] for p in req.time_slots[0]["participants"]] == [other_cadet.pk]


def test_join_group_already_listed_by_string_id(cadet, other_cadet):
    req = liberty.create_liberty_request(payload(companions=[{"id": str(other_cadet.pk)}]), cadet)["request"]
    with pytest.raises(InvalidState):
        liberty.request_to_join(req.pk, other_cadet)


def test_driver_capacity_enforced(cadet, other_cadet, make_person):
    third = make_person()
    riders = [other_cadet.as_participant(), third.as_participant()]
    with pytest.raises(CapacityExceeded):
        liberty.create_liberty_request(
            payload(is_driver=True, passenger_capacity=1, time_slots=[slot(participants=riders)]),
            cadet,
        )


def test_capacity_zeroed_for_non_driver(cadet):
    req = liberty.create_liberty_request(payload(passenger_capacity=4), cadet)["request"]
    assert req.is_driver is False
    assert req.passenger_capacity == 0


def test_create_on_behalf(cadet, leader):
    req = liberty.create_liberty_request_for_user(payload(), cadet, leader)
    assert req.requester == cadet
    assert req.status == RequestStatus.APPROVED
    assert req.created_on_behalf_of is True
    assert req.created_by_name == leader.display_name
    assert req.approver_initials == "LL"


def test_create_on_behalf_requires_permission(cadet, other_cadet):
    with pytest.raises(Forbidden):
        liberty.create_liberty_request_for_user(payload(), other_cadet, cadet)

# =========================
# Update / cancel
# =========================

def test_owner_updates_request(cadet, pass_request):
    req = liberty.update_liberty_request(pass_request.pk, {"time_slots": [slot(locations=["library"])]}, cadet)
    assert req.destination == "Library"
    assert req.last_edited_by == cadet


def test_partial_update_keeps_stored_fields(cadet, other_cadet, pass_request):
    liberty.join_time_slot(pass_request.pk, 0, other_cadet)
    req = liberty.update_liberty_request(pass_request.pk, {"notes": "Back by 1800"}, cadet, partial=True)
    assert req.notes == "Back by 1800"
    assert req.contact_number == "555-0100"
    assert req.destination == pass_request.destination
    assert [p["id"] for p in req.time_slots[0]["participants"]] == [other_cadet.pk]


def test_full_update_still_needs_a_destination(cadet, pass_request):
    with pytest.raises(ValidationError):
        liberty.update_liberty_request(pass_request.pk, {"notes": "x"}, cadet)


def test_other_cadet_cannot_update(other_cadet, pass_request):
    with pytest.raises(Forbidden):
        liberty.update_liberty_request(pass_request.pk, payload(), other_cadet)


def test_weekend_cannot_move(cadet, pass_request):
    with pytest.raises(ValidationError):
        liberty.update_liberty_request(pass_request.pk, payload(weekend_date="2026-02-21",
                                                                time_slots=[slot(day="2026-02-21")]), cadet)


def test_cancel_then_cancel_again(cadet, pass_request):
    req = liberty.cancel_liberty_request(pass_request.pk, cadet, "Plans changed")
    assert req.status == RequestStatus.CANCELLED
    assert req.cancelled_by_name == cadet.display_name
    with pytest.raises(InvalidState):
        liberty.cancel_liberty_request(pass_request.pk, cadet)


def test_leadership_may_cancel_anyones(leader, pass_request):
    assert liberty.cancel_liberty_request(pass_request.pk, leader).status == RequestStatus.CANCELLED

# =========================
# Approval
# =========================

def test_approve_stamps_initials(leader, pass_request):
    req = liberty.approve_liberty_request(pass_request.pk, leader)
    assert req.status == RequestStatus.APPROVED
    assert req.approved_by == leader
    assert req.approver_initials == "LL"
    assert req.approved_at is not None
    with pytest.raises(InvalidState):
        liberty.approve_liberty_request(pass_request.pk, leader)


def test_cadet_cannot_approve(other_cadet, pass_request):
    with pytest.raises(Forbidden):
        liberty.approve_liberty_request(pass_request.pk, other_cadet)


def test_reject_records_reason(leader, pass_request):
    req = liberty.reject_liberty_request(pass_request.pk, leader, "Too late")
    assert req.status == RequestStatus.REJECTED
    assert req.rejection_reason == "Too late"


def test_unknown_request(leader):
    with pytest.raises(NotFound):
        liberty.approve_liberty_request(999999, leader)


def test_bulk_approve_reports_each_id(leader, pass_request, other_cadet):
    second = liberty.create_liberty_request(payload(), other_cadet)["request"]
    liberty.cancel_liberty_request(second.pk, other_cadet)
    results = liberty.bulk_approve([pass_request.pk, second.pk, 424242], leader)
    assert [r["success"] for r in results] == [True, False, False]
    assert results[1]["error"] == "Request is no longer pending"
    assert results[2]["requestId"] == 424242
    pass_request.refresh_from_db()
    assert pass_request.status == RequestStatus.APPROVED


def test_bulk_reject(leader, pass_request):
    results = liberty.bulk_reject([pass_request.pk], leader, "Closed weekend")
    assert results == [{"requestId": pass_request.pk, "success": True}]
    pass_request.refresh_from_db()
    assert pass_request.rejection_reason == "Closed weekend"

# =========================
# Join requests
# =========================

def test_join_request_flow(cadet, other_cadet, pass_request):
    liberty.request_to_join(pass_request.pk, other_cadet)
    with pytest.raises(InvalidState):
        liberty.request_to_join(pass_request.pk, other_cadet)

    req = liberty.approve_join_request(pass_request.pk, other_cadet.pk, cadet)
    jr = req.join_requests[0]
    assert jr["status"] == JoinStatus.APPROVED
    assert jr["responded_by"] == cadet.pk
    assert req.companions == [{
        "id": other_cadet.pk,
        "name": other_cadet.display_name,
        "rank": "CDT",
        "joined_via_request": True,
    }]
    with pytest.raises(InvalidState):
        liberty.approve_join_request(pass_request.pk, other_cadet.pk, cadet)


def test_cannot_join_own_group(cadet, pass_request):
    with pytest.raises(Forbidden):
        liberty.request_to_join(pass_request.pk, cadet)


def test_cannot_join_cancelled_group(cadet, other_cadet, pass_request):
    liberty.cancel_liberty_request(pass_request.pk, cadet)
    with pytest.raises(InvalidState):
        liberty.request_to_join(pass_request.pk, other_cadet)


def test_join_missing_group(other_cadet):
    with pytest.raises(NotFound, match="Liberty request not found"):
        liberty.request_to_join(31337, other_cadet)


def test_reject_join_request(cadet, other_cadet, pass_request):
    liberty.request_to_join(pass_request.pk, other_cadet)
    req = liberty.reject_join_request(pass_request.pk, other_cadet.pk, cadet, "Car is full")
    assert req.join_requests[0]["status"] == JoinStatus.REJECTED
    assert req.join_requests[0]["rejection_reason"] == "Car is full"
    assert req.companions == []


def test_only_owner_or_leadership_answers(cadet, other_cadet, make_person, pass_request):
    liberty.request_to_join(pass_request.pk, other_cadet)
    stranger = make_person()
    with pytest.raises(Forbidden):
        liberty.approve_join_request(pass_request.pk, other_cadet.pk, stranger)


def test_cancel_join_request(other_cadet, pass_request):
    liberty.request_to_join(pass_request.pk, other_cadet)
    req = liberty.cancel_join_request(pass_request.pk, other_cadet)
    assert req.join_requests == []
    with pytest.raises(NotFound):
        liberty.cancel_join_request(pass_request.pk, other_cadet)

# =========================
# Time slots
# =========================

def test_join_and_leave_time_slot(other_cadet, pass_request):
    req = liberty.join_time_slot(pass_request.pk, 0, other_cadet)
    participants = req.time_slots[0]["participants"]
    assert [p["id"] for p in participants] == [other_cadet.pk]
    assert "joined_at" in participants[0]
    with pytest.raises(InvalidState):
        liberty.join_time_slot(pass_request.pk, 0, other_cadet)

    req = liberty.leave_time_slot(pass_request.pk, 0, other_cadet)
    assert req.time_slots[0]["participants"] == []
    with pytest.raises(InvalidState):
        liberty.leave_time_slot(pass_request.pk, 0, other_cadet)


def test_time_slot_index_checked(other_cadet, pass_request):
    with pytest.raises(ValidationError):
        liberty.join_time_slot(pass_request.pk, 3, other_cadet)


def test_requester_cannot_join_own_slot(cadet, pass_request):
    with pytest.raises(Forbidden):
        liberty.join_time_slot(pass_request.pk, 0, cadet)


def test_driver_slot_fills_up(cadet, other_cadet, make_person):
    req = liberty.create_liberty_request(payload(is_driver=True, passenger_capacity=1), cadet)["request"]
    liberty.join_time_slot(req.pk, 0, other_cadet)
    with pytest.raises(CapacityExceeded):
        liberty.join_time_slot(req.pk, 0, make_person())

# =========================
# Queries
# =========================

def test_pending_and_available_lists(cadet, other_cadet, leader, pass_request):
    assert liberty.pending_liberty_count() == 1
    assert liberty.list_pending_liberty_requests(leader) == [pass_request]
    assert liberty.list_my_liberty_requests(cadet) == [pass_request]
    assert liberty.available_liberty_groups(other_cadet, date(2026, 2, 14)) == [pass_request]
    assert liberty.available_liberty_groups(cadet) == []
    assert liberty.available_liberty_groups(other_cadet, date(2026, 2, 21)) == []


def test_pending_list_requires_view_permission(cadet):
    with pytest.raises(Forbidden):
        liberty.list_pending_liberty_requests(cadet)


def test_deadline_status_before_and_after(db):
    # Tuesday noon in New York; default deadline is Tuesday 23:59
    tuesday = datetime(2026, 1, 20, 17, 0, tzinfo=dt_timezone.utc)
    status = liberty.deadline_status(tuesday)
    assert status["beforeDeadline"] is True
    assert status["deadlineDay"] == "Tuesday"
    assert status["weekendDate"] == "2026-01-24"
    assert status["weekendEnd"] == "2026-01-25"
    assert status["deadline"].startswith("2026-01-20T23:59:59")

    wednesday = datetime(2026, 1, 21, 17, 0, tzinfo=dt_timezone.utc)
    assert liberty.deadline_status(wednesday)["beforeDeadline"] is False

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from cowork.exceptions import ConflictError, ValidationError
from cowork.models import ReservationInput, ReservationStatus, ReservationUpdate
from cowork.notifications import StatusChange
from cowork.outcome import ErrorKind
from cowork.seed import simulate_reservation, simulate_room
from cowork.store import ReservationStore
from cowork.time_utils import TimeInterval
from cowork.workflow import ApprovalWorkflow, WorkflowSettings


def _at(hour: int, minute: int = 0) -> datetime.datetime:
    return datetime.datetime(2025, 7, 15, hour, minute)


def _slot(start: datetime.datetime, end: datetime.datetime) -> TimeInterval:
    return TimeInterval(start=start, end=end)


def _request(room_id: int, start, end, **overrides) -> ReservationInput:
    details = dict(
        room_id=room_id,
        user_id=2,
        title="Team meeting",
        start_time=start,
        end_time=end,
        attendees=3,
    )
    details.update(overrides)
    return ReservationInput(**details)


def _assert_no_double_booking(store: ReservationStore):
    for first, second in itertools.combinations(store.list_confirmed(), 2):
        if first.room_id == second.room_id:
            assert not first.interval.overlaps(second.interval), (first, second)


@pytest.fixture
def room_id(store: ReservationStore) -> int:
    return simulate_room(store, name="Phoenix Meeting Room", capacity=8)


def test_create_with_conflict_check(workflow, store, room_id):
    outcome = workflow.create_with_conflict_check(_request(room_id, _at(9), _at(10)))
    assert outcome.ok
    created = outcome.value
    assert created.status == ReservationStatus.pending
    assert store.get(created.reservation_id) == created


def test_create_accepts_iso_strings(workflow, room_id):
    outcome = workflow.create_with_conflict_check(
        {
            "room_id": room_id,
            "user_id": 2,
            "title": "Standup",
            "start_time": "2025-07-15T09:00",
            "end_time": "2025-07-15T09:15",
        }
    )
    assert outcome.ok
    assert outcome.value.end_time == _at(9, 15)


def test_malformed_request(workflow, store, room_id):
    outcome = workflow.create_with_conflict_check({"room_id": room_id, "user_id": 2})
    assert outcome.error == ErrorKind.validation
    assert {"title", "start_time", "end_time"} <= set(outcome.field_errors)
    assert store.list_all() == []


def test_invalid_request(workflow, store, room_id):
    outcome = workflow.force_create(_request(room_id, _at(10), _at(9), attendees=9))
    assert outcome.error == ErrorKind.validation
    assert set(outcome.field_errors) == {"end_time", "attendees"}
    assert store.list_all() == []


def test_request_for_unknown_room(workflow):
    outcome = workflow.create_with_conflict_check(_request(42, _at(9), _at(10)))
    assert outcome.error == ErrorKind.not_found


def test_conflict_warning_stores_nothing(workflow, store, room_id):
    confirmed = simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=ReservationStatus.confirmed
    )
    outcome = workflow.create_with_conflict_check(
        _request(room_id, _at(9, 30), _at(10, 30))
    )
    assert not outcome.ok
    assert outcome.is_warning
    assert outcome.error == ErrorKind.conflict_warning
    assert outcome.conflicts == [confirmed]
    assert store.list_all() == [confirmed]


def test_pending_reservations_do_not_trigger_warning(workflow, store, room_id):
    simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    outcome = workflow.create_with_conflict_check(_request(room_id, _at(9), _at(10)))
    assert outcome.ok


def test_back_to_back_bookings(workflow, store, room_id):
    simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=ReservationStatus.confirmed
    )
    outcome = workflow.create_with_conflict_check(_request(room_id, _at(10), _at(11)))
    assert outcome.ok
    assert workflow.approve(outcome.value.reservation_id).ok


def test_approve(workflow, store, notifier, room_id):
    created = workflow.create_with_conflict_check(
        _request(room_id, _at(9), _at(10))
    ).unwrap()
    outcome = workflow.approve(created.reservation_id)
    assert outcome.ok
    assert outcome.value == created.reservation_id
    assert store.get(created.reservation_id).status == ReservationStatus.confirmed
    [notification] = notifier.list_for_user(created.user_id)
    assert notification.title == "Reservation Approved"
    assert notification.related_id == created.reservation_id
    assert notification.message == (
        'Your reservation for "Phoenix Meeting Room" has been approved.'
    )


def test_approve_rechecks_conflicts(workflow, store, room_id):
    first = workflow.force_create(_request(room_id, _at(9), _at(11))).unwrap()
    second = workflow.force_create(_request(room_id, _at(10), _at(12))).unwrap()

    assert workflow.approve(first.reservation_id).ok
    outcome = workflow.approve(second.reservation_id)

    assert outcome.error == ErrorKind.conflict
    assert [r.reservation_id for r in outcome.conflicts] == [first.reservation_id]
    assert store.get(second.reservation_id).status == ReservationStatus.pending
    _assert_no_double_booking(store)
    with pytest.raises(ConflictError) as exc_info:
        outcome.unwrap()
    assert exc_info.value.conflicting_ids == [first.reservation_id]


def test_concurrent_approvals_of_overlapping_reservations(workflow, store, room_id):
    pending = [
        simulate_reservation(store, room_id, _slot(_at(9), _at(10 + i % 2)))
        for i in range(6)
    ]
    with ThreadPoolExecutor(max_workers=6) as executor:
        outcomes = list(
            executor.map(lambda r: workflow.approve(r.reservation_id), pending)
        )
    assert sum(o.ok for o in outcomes) == 1
    assert all(o.error == ErrorKind.conflict for o in outcomes if not o.ok)
    assert len(store.list_confirmed()) == 1


def test_approve_unknown_reservation(workflow):
    assert workflow.approve(42).error == ErrorKind.not_found


@pytest.mark.parametrize(
    "status",
    [ReservationStatus.confirmed, ReservationStatus.rejected],
)
def test_only_pending_reservations_are_approved(workflow, store, room_id, status):
    reservation = simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=status
    )
    outcome = workflow.approve(reservation.reservation_id)
    assert outcome.error == ErrorKind.invalid_transition
    assert store.get(reservation.reservation_id).status == status


def test_reject(workflow, store, notifier, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    outcome = workflow.reject(reservation.reservation_id)
    assert outcome.ok
    assert store.get(reservation.reservation_id).status == ReservationStatus.rejected
    [notification] = notifier.list_for_user(reservation.user_id)
    assert notification.title == "Reservation Rejected"


def test_reject_is_idempotent(workflow, store, notifier, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    assert workflow.reject(reservation.reservation_id).ok
    outcome = workflow.reject(reservation.reservation_id)
    assert outcome.error == ErrorKind.invalid_transition
    assert store.get(reservation.reservation_id).status == ReservationStatus.rejected
    assert len(notifier.list_for_user(reservation.user_id)) == 1


def test_rejected_reservation_cannot_be_approved(workflow, store, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    workflow.reject(reservation.reservation_id)
    assert workflow.approve(reservation.reservation_id).error == (
        ErrorKind.invalid_transition
    )


def test_admin_required(workflow, store, admin, member, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    for operation in (workflow.approve, workflow.reject):
        outcome = operation(reservation.reservation_id, actor=member)
        assert outcome.error == ErrorKind.permission_denied
    assert store.get(reservation.reservation_id).status == ReservationStatus.pending
    assert workflow.approve(reservation.reservation_id, actor=admin).ok


def test_admin_check_can_be_disabled(store, member, room_id):
    workflow = ApprovalWorkflow(store, settings=WorkflowSettings(require_admin=False))
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    assert workflow.approve(reservation.reservation_id, actor=member).ok


def test_notifications_can_be_disabled(store, notifier, room_id):
    workflow = ApprovalWorkflow(
        store, notifier=notifier, settings=WorkflowSettings(notify=False)
    )
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    assert workflow.approve(reservation.reservation_id).ok
    assert notifier.list_for_user(reservation.user_id) == []


def test_extend(workflow, store, room_id):
    reservation = simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=ReservationStatus.confirmed
    )
    simulate_reservation(
        store, room_id, _slot(_at(11), _at(12)), status=ReservationStatus.confirmed
    )
    outcome = workflow.extend(reservation.reservation_id, "2025-07-15T11:00")
    assert outcome.ok
    assert outcome.value.end_time == _at(11)
    assert store.get(reservation.reservation_id).end_time == _at(11)
    _assert_no_double_booking(store)


def test_extend_rechecks_added_time(workflow, store, room_id):
    reservation = simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=ReservationStatus.confirmed
    )
    blocking = simulate_reservation(
        store,
        room_id,
        _slot(_at(10, 30), _at(11, 30)),
        status=ReservationStatus.confirmed,
    )
    outcome = workflow.extend_by(reservation.reservation_id, hours=1)
    assert outcome.error == ErrorKind.conflict
    assert outcome.conflicts == [blocking]
    assert store.get(reservation.reservation_id).end_time == _at(10)
    _assert_no_double_booking(store)


def test_extend_only_checks_added_time(workflow, store, room_id):
    simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), status=ReservationStatus.confirmed
    )
    overlapping = simulate_reservation(store, room_id, _slot(_at(9, 30), _at(10, 30)))
    outcome = workflow.extend(overlapping.reservation_id, _at(11))
    assert outcome.ok
    assert store.get(overlapping.reservation_id).end_time == _at(11)


@pytest.mark.parametrize("new_end", [_at(10), _at(9, 30)])
def test_extend_must_move_end_later(workflow, store, room_id, new_end):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    outcome = workflow.extend(reservation.reservation_id, new_end)
    assert outcome.error == ErrorKind.validation
    assert "end_time" in outcome.field_errors


def test_extend_by(workflow, store, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    outcome = workflow.extend_by(reservation.reservation_id, hours=1.5)
    assert outcome.ok
    assert store.get(reservation.reservation_id).end_time == _at(11, 30)


@pytest.mark.parametrize("hours", [0, -1])
def test_extend_by_requires_positive_hours(workflow, store, room_id, hours):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    outcome = workflow.extend_by(reservation.reservation_id, hours=hours)
    assert outcome.error == ErrorKind.validation
    assert store.get(reservation.reservation_id).end_time == _at(10)


def test_extend_unknown_reservation(workflow):
    assert workflow.extend_by(42, hours=1).error == ErrorKind.not_found
    assert workflow.extend(42, _at(12)).error == ErrorKind.not_found


def test_cancel(workflow, store, admin, member, room_id):
    own = simulate_reservation(
        store, room_id, _slot(_at(9), _at(10)), user_id=member.user_id
    )
    other = simulate_reservation(store, room_id, _slot(_at(11), _at(12)), user_id=3)

    assert workflow.cancel(own.reservation_id, actor=member).ok
    assert workflow.cancel(other.reservation_id, actor=member).error == (
        ErrorKind.permission_denied
    )
    assert workflow.cancel(other.reservation_id, actor=admin).ok
    assert store.list_all() == []
    assert workflow.cancel(other.reservation_id, actor=admin).error == (
        ErrorKind.not_found
    )


def test_booking_lifecycle(workflow, store, room_id):
    first = workflow.create_with_conflict_check(
        {
            "room_id": room_id,
            "user_id": 2,
            "title": "Planning",
            "start_time": "2025-07-15T09:00",
            "end_time": "2025-07-15T10:00",
        }
    )
    assert first.ok
    assert first.value.status == ReservationStatus.pending
    first_id = first.value.reservation_id

    assert workflow.approve(first_id).ok
    assert store.get(first_id).status == ReservationStatus.confirmed

    second_request = _request(room_id, _at(9, 30), _at(10, 30))
    warning = workflow.create_with_conflict_check(second_request)
    assert warning.error == ErrorKind.conflict_warning
    assert [r.reservation_id for r in warning.conflicts] == [first_id]

    forced = workflow.force_create(second_request)
    assert forced.ok
    second_id = forced.value.reservation_id
    assert store.get(second_id).status == ReservationStatus.pending

    refused = workflow.approve(second_id)
    assert refused.error == ErrorKind.conflict
    assert store.get(second_id).status == ReservationStatus.pending
    _assert_no_double_booking(store)


def test_edited_slot_cannot_be_inverted_before_approval(workflow, store, room_id):
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    with pytest.raises(ValidationError):
        store.update(reservation.reservation_id, ReservationUpdate(end_time=_at(8)))
    assert workflow.approve(reservation.reservation_id).ok
    assert store.get(reservation.reservation_id).interval == _slot(_at(9), _at(10))


def test_concurrent_approve_and_reject(store, notifier, room_id):
    workflow = ApprovalWorkflow(store, notifier=notifier)
    for _ in range(5):
        reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
        with ThreadPoolExecutor(max_workers=2) as executor:
            approval = executor.submit(workflow.approve, reservation.reservation_id)
            rejection = executor.submit(workflow.reject, reservation.reservation_id)
            outcomes = [approval.result(), rejection.result()]
        assert sum(o.ok for o in outcomes) == 1
        [failed] = [o for o in outcomes if not o.ok]
        assert failed.error == ErrorKind.invalid_transition
        expected = (
            ReservationStatus.confirmed
            if outcomes[0].ok
            else ReservationStatus.rejected
        )
        assert store.get(reservation.reservation_id).status == expected
        store.delete(reservation.reservation_id)
    assert len(notifier.list_for_user(1)) == 5


class _BrokenNotifier:
    def notify(self, change: StatusChange) -> None:
        raise RuntimeError("mail server unreachable")


@pytest.mark.parametrize(
    "operation, status",
    [
        ("approve", ReservationStatus.confirmed),
        ("reject", ReservationStatus.rejected),
    ],
)
def test_notifier_failure_is_logged(store, room_id, caplog, operation, status):
    workflow = ApprovalWorkflow(store, notifier=_BrokenNotifier())
    reservation = simulate_reservation(store, room_id, _slot(_at(9), _at(10)))
    with caplog.at_level(logging.ERROR, logger="cowork.workflow"):
        outcome = getattr(workflow, operation)(reservation.reservation_id)
    assert outcome.ok
    assert store.get(reservation.reservation_id).status == status
    assert "Failed to deliver notification" in caplog.text
    assert "mail server unreachable" in caplog.text

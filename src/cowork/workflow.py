#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Booking, approving, rejecting and extending reservations.

Every operation here either applies completely or leaves the store untouched,
and reports what happened as an `Outcome` rather than raising. Conflicts are
always checked against the confirmed reservations in the store *at the time
of the operation*: a booking that was clear when it was requested may have
been overtaken by other approvals since.
"""

import datetime
import logging
import threading
from collections import defaultdict
from typing import Any, Self

import pydantic
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel

from cowork.conflicts import BookingCandidate, find_conflicts
from cowork.exceptions import (
    ConflictError,
    PermissionDeniedError,
    ReservationError,
    StatusTransitionError,
    ValidationError,
)
from cowork.models import (
    Actor,
    Reservation,
    ReservationId,
    ReservationInput,
    ReservationStatus,
    ReservationUpdate,
    RoomId,
)
from cowork.notifications import Notifier, NullNotifier, StatusChange
from cowork.outcome import Outcome
from cowork.store import ReservationStore
from cowork.time_utils import Duration, TimeUnits, extend, parse_timestamp
from cowork.validation import validate_reservation_input

logger = logging.getLogger(__name__)


class WorkflowSettings(BaseModel):
    """Parameters
    ----------
    require_admin
        Refuse approvals and rejections requested by an actor who is not
        an admin.
    notify
        Report approvals and rejections to the notifier.
    """

    require_admin: bool = True
    notify: bool = True

    @classmethod
    def from_config(cls, config: DictConfig) -> Self:
        return cls(**OmegaConf.to_container(config, resolve=True))


def _coerce_input(data: ReservationInput | dict[str, Any]) -> ReservationInput:
    if isinstance(data, ReservationInput):
        return data
    try:
        return ReservationInput.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e)


def _describe(conflicts: list[Reservation]) -> str:
    return ", ".join(str(r) for r in conflicts)


class ApprovalWorkflow:
    """Mediates every status change and time change of a reservation.

    Parameters
    ----------
    store
        Where rooms and reservations live.
    notifier
        Receives a `StatusChange` whenever a reservation is approved or
        rejected. Defaults to a notifier that drops everything.
    settings
        Workflow switches, see `WorkflowSettings`.
    """

    def __init__(
        self,
        store: ReservationStore,
        notifier: Notifier | None = None,
        settings: WorkflowSettings | None = None,
    ):
        self.store = store
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.settings = settings if settings is not None else WorkflowSettings()
        self._room_locks: dict[RoomId, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _room_lock(self, room_id: RoomId) -> threading.Lock:
        """Serialises check-then-write sequences touching the same room."""
        with self._locks_guard:
            return self._room_locks[room_id]

    def _check_admin(self, actor: Actor | None, action: str) -> None:
        if actor is None or not self.settings.require_admin:
            return
        if not actor.is_admin:
            raise PermissionDeniedError(
                f"User {actor.user_id} is not allowed to {action} reservations"
            )

    @staticmethod
    def _check_pending(reservation: Reservation, action: str) -> None:
        if reservation.status != ReservationStatus.pending:
            raise StatusTransitionError(
                f"Cannot {action} reservation {reservation.reservation_id}: "
                f"it is {reservation.status}, only pending reservations can be "
                f"{action}d"
            )

    def _notify(self, reservation: Reservation, status: ReservationStatus) -> None:
        """The status change is already committed, so a failing notifier is
        logged rather than reported to the caller."""
        if not self.settings.notify:
            return
        change = StatusChange(
            reservation_id=reservation.reservation_id,
            new_status=status,
            owner_user_id=reservation.user_id,
        )
        try:
            self.notifier.notify(change)
        except Exception:
            logger.exception(f"Failed to deliver notification {change}")

    def approve(
        self, reservation_id: ReservationId, actor: Actor | None = None
    ) -> Outcome[ReservationId]:
        """Confirm a pending reservation, unless it now overlaps another
        confirmed reservation in its room.

        Returns
        -------
        The id of the approved reservation, or a not found, conflict,
        invalid transition or permission denied error. On error the
        reservation keeps its status.
        """
        conflicts: list[Reservation] = []
        try:
            self._check_admin(actor, "approve")
            room_id = self.store.get(reservation_id).room_id
            with self._room_lock(room_id), self.store.context.transaction():
                # re-read under the lock, the reservation may have changed meanwhile
                reservation = self.store.get(reservation_id)
                self._check_pending(reservation, "approve")
                conflicts = find_conflicts(
                    self.store.list_confirmed(room_id),
                    BookingCandidate.for_reservation(reservation),
                )
                if conflicts:
                    raise ConflictError(
                        f"Cannot approve reservation {reservation_id}: the slot "
                        f"overlaps confirmed reservation(s) {_describe(conflicts)}",
                        conflicting_ids=[r.reservation_id for r in conflicts],
                    )
                self.store.set_status(reservation_id, ReservationStatus.confirmed)
        except ReservationError as e:
            logger.warning(f"Approval of reservation {reservation_id} refused: {e}")
            return Outcome.failure(e, conflicts=conflicts)
        logger.info(f"Reservation {reservation_id} approved")
        self._notify(reservation, ReservationStatus.confirmed)
        return Outcome.success(
            reservation_id, message=f"Reservation {reservation_id} approved"
        )

    def reject(
        self, reservation_id: ReservationId, actor: Actor | None = None
    ) -> Outcome[ReservationId]:
        """Turn down a pending reservation. Rejecting never creates a double
        booking, so there is no conflict check."""
        try:
            self._check_admin(actor, "reject")
            room_id = self.store.get(reservation_id).room_id
            with self._room_lock(room_id), self.store.context.transaction():
                reservation = self.store.get(reservation_id)
                self._check_pending(reservation, "reject")
                self.store.set_status(reservation_id, ReservationStatus.rejected)
        except ReservationError as e:
            logger.warning(f"Rejection of reservation {reservation_id} refused: {e}")
            return Outcome.failure(e)
        logger.info(f"Reservation {reservation_id} rejected")
        self._notify(reservation, ReservationStatus.rejected)
        return Outcome.success(
            reservation_id, message=f"Reservation {reservation_id} rejected"
        )

    def extend(
        self,
        reservation_id: ReservationId,
        new_end_time: datetime.datetime | str,
    ) -> Outcome[Reservation]:
        """Move the end of a reservation later.

        Only the added time, from the current end to `new_end_time`, is
        checked against the other confirmed reservations in the room. The
        original slot is not re-checked.

        Returns
        -------
        The updated reservation, or a not found, validation or conflict
        error. On error the end time is unchanged.
        """
        conflicts: list[Reservation] = []
        try:
            new_end_time = parse_timestamp(new_end_time)
            room_id = self.store.get(reservation_id).room_id
            with self._room_lock(room_id), self.store.context.transaction():
                reservation = self.store.get(reservation_id)
                if new_end_time <= reservation.end_time:
                    raise ValidationError(
                        {
                            "end_time": f"New end time {new_end_time} must be after "
                            f"the current end time {reservation.end_time}"
                        }
                    )
                added_window = BookingCandidate(
                    room_id=room_id,
                    start_time=reservation.end_time,
                    end_time=new_end_time,
                    exclude_id=reservation_id,
                )
                conflicts = find_conflicts(
                    self.store.list_confirmed(room_id), added_window
                )
                if conflicts:
                    raise ConflictError(
                        f"Cannot extend reservation {reservation_id} to "
                        f"{new_end_time}: the added time overlaps confirmed "
                        f"reservation(s) {_describe(conflicts)}",
                        conflicting_ids=[r.reservation_id for r in conflicts],
                    )
                updated = self.store.update(
                    reservation_id, ReservationUpdate(end_time=new_end_time)
                )
        except ReservationError as e:
            logger.warning(f"Extension of reservation {reservation_id} refused: {e}")
            return Outcome.failure(e, conflicts=conflicts)
        logger.info(f"Reservation {reservation_id} extended to {new_end_time}")
        return Outcome.success(
            updated, message=f"Reservation {reservation_id} extended to {new_end_time}"
        )

    def extend_by(
        self, reservation_id: ReservationId, hours: int | float
    ) -> Outcome[Reservation]:
        """Extend a reservation by a number of hours. See `extend`."""
        try:
            if hours <= 0:
                raise ValidationError({"hours": "Please enter a valid number of hours"})
            reservation = self.store.get(reservation_id)
        except ReservationError as e:
            logger.warning(f"Extension of reservation {reservation_id} refused: {e}")
            return Outcome.failure(e)
        new_end_time = extend(reservation.end_time, Duration(hours, TimeUnits.Hours))
        return self.extend(reservation_id, new_end_time)

    def create_with_conflict_check(
        self, reservation: ReservationInput | dict[str, Any]
    ) -> Outcome[Reservation]:
        """Validate and book a room, provided the slot does not overlap a
        confirmed reservation.

        Returns
        -------
        The new pending reservation. If the slot is taken, a conflict warning
        listing the confirmed reservations in the way is returned and nothing
        is stored. The requester may then book anyway with `force_create`.
        Validation and not found errors are returned for malformed requests.
        """
        conflicts: list[Reservation] = []
        try:
            reservation = _coerce_input(reservation)
            room = self.store.get_room(reservation.room_id)
            validate_reservation_input(reservation, room)
            conflicts = find_conflicts(
                self.store.list_confirmed(room.room_id),
                BookingCandidate(
                    room_id=room.room_id,
                    start_time=reservation.start_time,
                    end_time=reservation.end_time,
                ),
            )
            if conflicts:
                warning = ConflictError(
                    f"The selected time slot conflicts with an existing "
                    f"reservation for {room.name}: {_describe(conflicts)}",
                    conflicting_ids=[r.reservation_id for r in conflicts],
                )
                logger.info(f"Booking conflict in room {room.room_id}: {warning}")
                return Outcome.failure(warning, conflicts=conflicts, warning=True)
            created = self.store.create(reservation)
        except ReservationError as e:
            logger.warning(f"Reservation request refused: {e}")
            return Outcome.failure(e, conflicts=conflicts)
        return Outcome.success(
            created,
            message=f"Reservation {created.reservation_id} is pending approval",
        )

    def force_create(
        self, reservation: ReservationInput | dict[str, Any]
    ) -> Outcome[Reservation]:
        """Validate and book a room without checking for conflicts. The
        reservation is stored as pending, approval will re-check it."""
        try:
            reservation = _coerce_input(reservation)
            room = self.store.get_room(reservation.room_id)
            validate_reservation_input(reservation, room)
            created = self.store.create(reservation)
        except ReservationError as e:
            logger.warning(f"Reservation request refused: {e}")
            return Outcome.failure(e)
        logger.info(
            f"Reservation {created.reservation_id} submitted without conflict check"
        )
        return Outcome.success(
            created,
            message=f"Reservation {created.reservation_id} is pending approval",
        )

    def cancel(
        self, reservation_id: ReservationId, actor: Actor | None = None
    ) -> Outcome[ReservationId]:
        """Cancel a reservation, removing it from the store. Requesters may
        cancel their own reservations, admins any reservation."""
        try:
            reservation = self.store.get(reservation_id)
            if (
                actor is not None
                and not actor.is_admin
                and actor.user_id != reservation.user_id
            ):
                raise PermissionDeniedError(
                    f"User {actor.user_id} cannot cancel reservation "
                    f"{reservation_id} made by user {reservation.user_id}"
                )
            self.store.delete(reservation_id)
        except ReservationError as e:
            logger.warning(f"Cancellation of reservation {reservation_id} refused: {e}")
            return Outcome.failure(e)
        return Outcome.success(
            reservation_id, message=f"Reservation {reservation_id} cancelled"
        )

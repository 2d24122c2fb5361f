#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The authoritative collection of rooms and reservations.

Only `ReservationStore` writes to the room and reservation tables of an
`ExecutionContext`; everything else reads through it.
"""

import functools
import logging
from typing import Iterable

import polars as pl
import pydantic
from polars.exceptions import NoDataError
from pydantic import BaseModel

from cowork.exceptions import NotFoundError, ValidationError
from cowork.models import (
    Reservation,
    ReservationId,
    ReservationInput,
    ReservationStatus,
    ReservationUpdate,
    Room,
    RoomId,
    RoomInput,
    RoomUpdate,
    UserId,
)
from cowork.simulation.database_schemas import DatabaseNamespace
from cowork.simulation.execution_context import ExecutionContext, get_current_context
from cowork.simulation.utils import (
    NOT_GIVEN,
    NotGiven,
    contains_all_filter_dataframe,
    exact_match_filter_dataframe,
    filter_dataframe,
    fuzzy_match_filter_dataframe,
    gt_eq_filter_dataframe,
)
from cowork.time_utils import now_
from cowork.validation import validate_reservation_change

logger = logging.getLogger(__name__)


def _merge(record: BaseModel, changes: dict) -> BaseModel:
    """Validate `record` with `changes` applied, as the model it is."""
    try:
        return type(record).model_validate({**record.model_dump(), **changes})
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e)


class ReservationStore:
    """CRUD over rooms and reservations.

    The store assigns identities and keeps referential integrity (deleting a
    room deletes its reservations). It does not check for double bookings:
    that is the job of `cowork.workflow.ApprovalWorkflow`.

    Parameters
    ----------
    context
        The in-memory databases to operate on. Defaults to the global
        execution context.
    """

    def __init__(self, context: ExecutionContext | None = None):
        self.context = context if context is not None else get_current_context()

    # ------------------------------------------------------------------ rooms

    def _room_records(self) -> pl.DataFrame:
        return self.context.get_database(DatabaseNamespace.ROOMS)

    def add_room(self, room: RoomInput) -> Room:
        """Add a room to the space. New rooms are available for booking."""
        with self.context.transaction():
            new_room = Room(
                **room.model_dump(),
                room_id=self.context.next_id(DatabaseNamespace.ROOMS),
                is_available=True,
            )
            self.context.add_to_database(
                DatabaseNamespace.ROOMS, rows=[new_room.model_dump()]
            )
        logger.info(f"Added room {new_room.room_id}: {new_room.name}")
        return new_room

    def get_room(self, room_id: RoomId) -> Room:
        """Raises
        ------
        NotFoundError if there is no room with `room_id`.
        """
        records = filter_dataframe(
            self._room_records(),
            filter_criteria=[("room_id", room_id, exact_match_filter_dataframe)],
        ).to_dicts()
        if not records:
            raise NotFoundError(f"Room {room_id} not found")
        assert len(records) == 1
        return Room(**records[0])

    def list_rooms(self) -> list[Room]:
        return [Room(**record) for record in self._room_records().to_dicts()]

    def find_rooms(
        self,
        name: str | NotGiven = NOT_GIVEN,
        capacity: int | NotGiven = NOT_GIVEN,
        room_type: str | None | NotGiven = NOT_GIVEN,
        amenities: list[str] | NotGiven = NOT_GIVEN,
    ) -> list[Room]:
        """Search rooms. Called with no arguments, every room is returned.

        Parameters
        ----------
        name
            Fuzzy matched against the room name.
        capacity
            Only rooms hosting at least this many people are returned.
        room_type
            Exact room category.
        amenities
            Rooms must offer all of these.
        """
        criteria = [
            (
                "name",
                name,
                functools.partial(fuzzy_match_filter_dataframe, threshold=80),
            ),
            ("capacity", capacity, gt_eq_filter_dataframe),
            ("room_type", room_type, exact_match_filter_dataframe),
            ("amenities", amenities or NOT_GIVEN, contains_all_filter_dataframe),
        ]
        if all(value is NOT_GIVEN for _, value, _ in criteria):
            return self.list_rooms()
        records = filter_dataframe(self._room_records(), criteria).to_dicts()
        return [Room(**record) for record in records]

    def update_room(self, room_id: RoomId, patch: RoomUpdate) -> Room:
        """Apply the fields set on `patch` to a room.

        Raises
        ------
        NotFoundError if there is no room with `room_id`.
        ValidationError if the patched room is malformed, eg a field that is
        required is set to `None`.
        """
        changes = patch.changes()
        updated = _merge(self.get_room(room_id), changes)
        if changes:
            self.context.update_database(
                DatabaseNamespace.ROOMS,
                predicate=pl.col("room_id") == room_id,
                values=updated.model_dump(include=set(changes)),
            )
        return updated

    def delete_room(self, room_id: RoomId) -> None:
        """Remove a room together with every reservation made for it.

        Raises
        ------
        NotFoundError if there is no room with `room_id`.
        """
        self.get_room(room_id)
        with self.context.transaction():
            orphaned = [r.reservation_id for r in self.list_by_room(room_id)]
            if orphaned:
                self.context.remove_from_database(
                    DatabaseNamespace.RESERVATIONS,
                    predicate=pl.col("room_id") == room_id,
                )
            self.context.remove_from_database(
                DatabaseNamespace.ROOMS, predicate=pl.col("room_id") == room_id
            )
        logger.info(f"Deleted room {room_id} and reservations {orphaned}")

    # ----------------------------------------------------------- reservations

    def _reservation_records(self) -> pl.DataFrame:
        return self.context.get_database(DatabaseNamespace.RESERVATIONS)

    @staticmethod
    def _to_reservations(records: Iterable[dict]) -> list[Reservation]:
        return [Reservation.from_dict(record) for record in records]

    def create(self, reservation: ReservationInput) -> Reservation:
        """Store a new reservation and return it with its identity assigned.

        The reservation always starts `pending`. No conflict check is done
        here, callers decide whether to pre-check.

        Raises
        ------
        NotFoundError if the room does not exist.
        """
        self.get_room(reservation.room_id)
        with self.context.transaction():
            new_reservation = Reservation(
                **reservation.model_dump(),
                reservation_id=self.context.next_id(DatabaseNamespace.RESERVATIONS),
                status=ReservationStatus.pending,
                created_at=now_(),
            )
            self.context.add_to_database(
                DatabaseNamespace.RESERVATIONS, rows=[new_reservation.model_dump()]
            )
        logger.info(
            f"Created reservation {new_reservation.reservation_id} "
            f"for room {new_reservation.room_id}"
        )
        return new_reservation

    def get(self, reservation_id: ReservationId) -> Reservation:
        """Raises
        ------
        NotFoundError if there is no reservation with `reservation_id`.
        """
        records = filter_dataframe(
            self._reservation_records(),
            filter_criteria=[
                ("reservation_id", reservation_id, exact_match_filter_dataframe)
            ],
        ).to_dicts()
        if not records:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        assert len(records) == 1
        return Reservation.from_dict(records[0])

    def update(
        self, reservation_id: ReservationId, patch: ReservationUpdate
    ) -> Reservation:
        """Apply the fields set on `patch` to a reservation.

        The patched reservation is validated against its room (end after
        start, attendees within capacity, ...). Time bounds are not checked
        against other bookings: callers changing them must check for
        conflicts first.

        Raises
        ------
        NotFoundError if there is no reservation with `reservation_id`.
        ValidationError if the patched reservation is malformed.
        """
        changes = patch.changes()
        updated = _merge(self.get(reservation_id), changes)
        validate_reservation_change(updated, self.get_room(updated.room_id))
        return self._apply(reservation_id, updated.model_dump(include=set(changes)))

    def set_status(
        self, reservation_id: ReservationId, status: ReservationStatus
    ) -> Reservation:
        """Overwrite the status of a reservation. Reserved for the approval
        workflow, which owns the status transitions."""
        return self._apply(reservation_id, {"status": status})

    def _apply(self, reservation_id: ReservationId, changes: dict) -> Reservation:
        reservation = self.get(reservation_id)
        if changes:
            self.context.update_database(
                DatabaseNamespace.RESERVATIONS,
                predicate=pl.col("reservation_id") == reservation_id,
                values=changes,
            )
        return reservation.model_copy(update=changes)

    def delete(self, reservation_id: ReservationId) -> bool:
        """Remove a reservation. Deleting an unknown reservation is a no-op.

        Returns
        -------
        Whether a reservation was removed.
        """
        try:
            self.context.remove_from_database(
                DatabaseNamespace.RESERVATIONS,
                predicate=pl.col("reservation_id") == reservation_id,
            )
        except NoDataError:
            logger.debug(f"Reservation {reservation_id} already absent")
            return False
        logger.info(f"Deleted reservation {reservation_id}")
        return True

    def restore(
        self,
        rooms: Iterable[Room] = (),
        reservations: Iterable[Reservation] = (),
    ) -> None:
        """Load existing records verbatim, keeping their ids, statuses and
        creation times. Used to seed the store.

        Raises
        ------
        NotFoundError if a reservation refers to a room that is neither
        stored nor being restored.
        """
        rooms, reservations = list(rooms), list(reservations)
        known_rooms = {r.room_id for r in rooms} | {
            r.room_id for r in self.list_rooms()
        }
        for reservation in reservations:
            if reservation.room_id not in known_rooms:
                raise NotFoundError(
                    f"Reservation {reservation.reservation_id} refers to unknown "
                    f"room {reservation.room_id}"
                )
        with self.context.transaction():
            if rooms:
                self.context.add_to_database(
                    DatabaseNamespace.ROOMS, rows=[r.model_dump() for r in rooms]
                )
            if reservations:
                self.context.add_to_database(
                    DatabaseNamespace.RESERVATIONS,
                    rows=[r.model_dump() for r in reservations],
                )
        logger.info(
            f"Restored {len(rooms)} room(s) and {len(reservations)} reservation(s)"
        )

    def list_all(self) -> list[Reservation]:
        return self._to_reservations(self._reservation_records().to_dicts())

    def list_by_room(self, room_id: RoomId) -> list[Reservation]:
        return self._list_where("room_id", room_id)

    def list_by_user(self, user_id: UserId) -> list[Reservation]:
        return self._list_where("user_id", user_id)

    def list_pending(self) -> list[Reservation]:
        return self._list_where("status", ReservationStatus.pending.value)

    def list_confirmed(self, room_id: RoomId | None = None) -> list[Reservation]:
        """Confirmed reservations, optionally restricted to one room."""
        confirmed = self._list_where("status", ReservationStatus.confirmed.value)
        if room_id is not None:
            confirmed = [r for r in confirmed if r.room_id == room_id]
        return confirmed

    def _list_where(self, column_name: str, value) -> list[Reservation]:
        records = filter_dataframe(
            self._reservation_records(),
            filter_criteria=[(column_name, value, exact_match_filter_dataframe)],
        ).to_dicts()
        return self._to_reservations(records)

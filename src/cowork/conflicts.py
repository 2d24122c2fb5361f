#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Double-booking detection.

Only confirmed reservations block a room. Intervals are half-open, so a
booking ending at 10:00 and another starting at 10:00 do not conflict.
"""

import datetime
import logging
from typing import Iterable, NamedTuple

from cowork.models import Reservation, ReservationId, ReservationStatus, RoomId
from cowork.time_utils import TimeInterval

logger = logging.getLogger(__name__)


class BookingCandidate(NamedTuple):
    """A slot someone wants to hold in a room.

    Parameters
    ----------
    exclude_id
        A reservation to ignore while checking, so that a reservation can
        be validated against every *other* confirmed booking.
    """

    room_id: RoomId
    start_time: datetime.datetime
    end_time: datetime.datetime
    exclude_id: ReservationId | None = None

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start_time, end=self.end_time)

    @classmethod
    def for_reservation(cls, reservation: Reservation) -> "BookingCandidate":
        """The candidate a reservation represents, excluding itself."""
        return cls(
            room_id=reservation.room_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            exclude_id=reservation.reservation_id,
        )


def _blocking(
    reservations: Iterable[Reservation], candidate: BookingCandidate
) -> Iterable[Reservation]:
    for reservation in reservations:
        if (
            reservation.room_id == candidate.room_id
            and reservation.status == ReservationStatus.confirmed
            and reservation.reservation_id != candidate.exclude_id
        ):
            yield reservation


def find_conflicts(
    reservations: Iterable[Reservation], candidate: BookingCandidate
) -> list[Reservation]:
    """Return the confirmed reservations in the candidate's room whose slot
    overlaps the candidate's, sorted by start time."""
    interval = candidate.interval
    if interval.is_degenerate:
        return []
    conflicts = [
        r for r in _blocking(reservations, candidate) if interval.overlaps(r.interval)
    ]
    conflicts.sort(key=lambda r: r.start_time)
    return conflicts


def has_conflict(
    reservations: Iterable[Reservation], candidate: BookingCandidate
) -> bool:
    """Check whether booking `candidate` would double-book its room.

    Parameters
    ----------
    reservations
        Reservations to check against. Any status may be passed in: only
        confirmed reservations for the candidate's room are considered.
    candidate
        The slot to check. Degenerate slots (end at or before start) never
        conflict; callers are expected to reject them beforehand.
    """
    interval = candidate.interval
    if interval.is_degenerate:
        return False
    for reservation in _blocking(reservations, candidate):
        if interval.overlaps(reservation.interval):
            logger.debug(
                f"Room {candidate.room_id}: {interval.start} - {interval.end} "
                f"overlaps reservation {reservation.reservation_id}"
            )
            return True
    return False


def pending_with_conflicts(reservations: Iterable[Reservation]) -> set[ReservationId]:
    """IDs of the pending reservations that could not currently be approved
    because they overlap a confirmed booking in their room."""
    reservations = list(reservations)
    return {
        r.reservation_id
        for r in reservations
        if r.status == ReservationStatus.pending
        and has_conflict(reservations, BookingCandidate.for_reservation(r))
    }

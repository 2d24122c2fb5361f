#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import re

from cowork.exceptions import ValidationError
from cowork.models import ReservationInput, Room

# Indonesian mobile numbers in international format, without the leading +
PHONE_PATTERN = re.compile(r"^62[0-9]{8,15}$")
MIN_ATTENDEES = 1


def normalise_phone(phone: str) -> str:
    """Strip the spaces and dashes users type between digit groups."""
    return re.sub(r"[\s\-]", "", phone)


def _booking_errors(reservation: ReservationInput, room: Room) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not reservation.title.strip():
        errors["title"] = "Title is required"
    if reservation.interval.is_degenerate:
        errors["end_time"] = "End time must be after start time"
    if reservation.attendees < MIN_ATTENDEES:
        errors["attendees"] = "At least 1 attendee is required"
    elif reservation.attendees > room.capacity:
        errors["attendees"] = (
            f"Maximum {room.capacity} attendees allowed for this room"
        )
    if reservation.contact_phone and not PHONE_PATTERN.match(
        normalise_phone(reservation.contact_phone)
    ):
        errors["contact_phone"] = "Please enter a valid phone number"
    return errors


def validate_reservation_input(reservation: ReservationInput, room: Room) -> None:
    """Check a reservation request against the room it targets.

    All problems are collected before raising, so the caller can
    report every offending field at once.

    Raises
    ------
    ValidationError if the request cannot be booked as submitted.
    """
    errors = _booking_errors(reservation, room)
    if not room.is_available:
        errors["room_id"] = f"Room '{room.name}' is not available for booking"
    if errors:
        raise ValidationError(errors)


def validate_reservation_change(reservation: ReservationInput, room: Room) -> None:
    """Check an edited reservation against its room. Unlike new requests,
    existing bookings may be edited while the room is unavailable.

    Raises
    ------
    ValidationError if the edit leaves the reservation malformed.
    """
    if errors := _booking_errors(reservation, room):
        raise ValidationError(errors)

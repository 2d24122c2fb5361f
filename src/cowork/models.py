#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Rooms, reservations and the people acting on them."""

import datetime
from enum import StrEnum, auto
from typing import Any, Self

from pydantic import BaseModel, Field, field_validator

from cowork.time_utils import TimeInterval, parse_timestamp

RoomId = int
ReservationId = int
UserId = int


class ReservationStatus(StrEnum):
    """Lifecycle of a reservation.

    Reservations are created `pending` and an admin either approves
    them (`confirmed`) or turns them down (`rejected`). `cancelled` only
    appears in seeded or restored records, such as the demo data: cancelling
    through the workflow deletes the reservation.
    """

    pending = auto()
    confirmed = auto()
    rejected = auto()
    cancelled = auto()


class UserRole(StrEnum):
    admin = auto()
    user = auto()


class Actor(BaseModel, frozen=True):
    """The authenticated user on whose behalf an operation is performed."""

    user_id: UserId
    role: UserRole = UserRole.user

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class RoomInput(BaseModel):
    """The details needed to add a room to the space.

    Parameters
    ----------
    room_type
        Free-form category, eg conference, meeting, brainstorming,
        focus or office.
    capacity
        The maximum number of attendees the room can host.
    hourly_rate
        Price of booking the room for an hour.
    amenities
        What the room is equipped with (eg projector, whiteboard).
        Duplicates are dropped.
    parking_capacity_cars, parking_capacity_motorcycles
        Parking spots allocated to the room's bookings.
    """

    name: str = Field(min_length=1)
    room_type: str | None = None
    capacity: int = Field(ge=1)
    floor: int = 1
    hourly_rate: float = Field(default=0.0, ge=0)
    amenities: list[str] = Field(default_factory=list)
    description: str | None = None
    parking_capacity_cars: int = Field(default=0, ge=0)
    parking_capacity_motorcycles: int = Field(default=0, ge=0)

    @field_validator("amenities")
    @classmethod
    def unique_amenities(cls, amenities: list[str]) -> list[str]:
        return list(dict.fromkeys(amenities))


class Room(RoomInput):
    room_id: RoomId
    is_available: bool = True

    def __str__(self) -> str:
        return f"{self.name} (floor {self.floor}, capacity {self.capacity})"


class RoomUpdate(BaseModel):
    """Fields of a room that may be changed after creation. Only the
    fields explicitly set are applied."""

    name: str | None = Field(default=None, min_length=1)
    room_type: str | None = None
    capacity: int | None = Field(default=None, ge=1)
    floor: int | None = None
    hourly_rate: float | None = Field(default=None, ge=0)
    amenities: list[str] | None = None
    description: str | None = None
    parking_capacity_cars: int | None = Field(default=None, ge=0)
    parking_capacity_motorcycles: int | None = Field(default=None, ge=0)
    is_available: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def _maybe_parse_timestamp(value: Any) -> Any:
    if isinstance(value, str):
        return parse_timestamp(value)
    return value


class ReservationInput(BaseModel):
    """A request to book a room.

    Parameters
    ----------
    user_id
        The requester.
    start_time, end_time
        The booked slot. ISO 8601 strings are accepted.
    attendees
        How many people will attend. Must fit in the room.
    contact_phone
        Optional phone number the requester can be reached on.
    """

    room_id: RoomId
    user_id: UserId
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    attendees: int = 1
    notes: str = ""
    contact_phone: str | None = None

    parse_times = field_validator("start_time", "end_time", mode="before")(
        _maybe_parse_timestamp
    )

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start_time, end=self.end_time)


class Reservation(ReservationInput):
    reservation_id: ReservationId
    status: ReservationStatus = ReservationStatus.pending
    created_at: datetime.datetime

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = dict(data)
        if data.get("notes") is None:
            data["notes"] = ""
        return cls(**data)

    def __str__(self) -> str:
        start = self.start_time.strftime("%Y-%m-%d %H:%M")
        end = self.end_time.strftime("%H:%M")
        if self.end_time.date() != self.start_time.date():
            end = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"#{self.reservation_id} '{self.title}' {start} to {end} [{self.status}]"


class ReservationUpdate(BaseModel):
    """Fields of a reservation that may be changed directly. Status is not
    patchable: it only changes through the approval workflow."""

    title: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    attendees: int | None = None
    notes: str | None = None
    contact_phone: str | None = None

    parse_times = field_validator("start_time", "end_time", mode="before")(
        _maybe_parse_timestamp
    )

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

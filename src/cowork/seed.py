#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Populate a store with rooms and bookings, either tailored for a test or
the demo data the application ships with."""

import datetime

from cowork.models import (
    Reservation,
    ReservationStatus,
    Room,
    RoomId,
    RoomInput,
    UserId,
)
from cowork.simulation.database_schemas import DatabaseNamespace
from cowork.store import ReservationStore
from cowork.time_utils import TimeInterval, now_

MOCK_ROOMS = [
    Room(
        room_id=1,
        name="Orion Conference Room",
        room_type="conference",
        capacity=20,
        floor=1,
        amenities=["projector", "whiteboard", "video-conferencing"],
        description="Large conference room perfect for team meetings and presentations.",
        hourly_rate=50000,
        parking_capacity_cars=5,
        parking_capacity_motorcycles=10,
    ),
    Room(
        room_id=2,
        name="Phoenix Meeting Room",
        room_type="meeting",
        capacity=8,
        floor=1,
        amenities=["whiteboard", "tv-screen"],
        description="Mid-sized meeting room for small team discussions.",
        hourly_rate=35000,
        parking_capacity_cars=2,
        parking_capacity_motorcycles=15,
    ),
    Room(
        room_id=3,
        name="Pegasus Brainstorm Room",
        room_type="brainstorming",
        capacity=6,
        floor=2,
        amenities=["whiteboard", "standing-desk", "creative-supplies"],
        description="Creative space designed for brainstorming and ideation sessions.",
        hourly_rate=40000,
        parking_capacity_cars=2,
        parking_capacity_motorcycles=15,
    ),
    Room(
        room_id=4,
        name="Cassiopeia Quiet Room",
        room_type="focus",
        capacity=1,
        floor=2,
        amenities=["ergonomic-chair", "noise-cancellation"],
        description="Private focus room for individual work requiring concentration.",
        hourly_rate=75000,
        parking_capacity_cars=0,
        parking_capacity_motorcycles=5,
        is_available=False,
    ),
    Room(
        room_id=5,
        name="Andromeda Office Suite",
        room_type="office",
        capacity=4,
        floor=3,
        amenities=["private-bathroom", "coffee-machine", "mini-fridge"],
        description="Premium office suite for executives or small teams needing privacy.",
        hourly_rate=85000,
        parking_capacity_cars=1,
        parking_capacity_motorcycles=2,
    ),
    Room(
        room_id=6,
        name="Gemini Creative Hub",
        room_type="brainstorming",
        capacity=10,
        floor=3,
        amenities=["whiteboard", "tv-screen", "coffee-machine", "creative-supplies"],
        description="Collaborative space designed to spark creativity and innovation.",
        hourly_rate=72000,
        parking_capacity_cars=3,
        parking_capacity_motorcycles=20,
    ),
]

MOCK_RESERVATIONS = [
    Reservation(
        reservation_id=1,
        room_id=1,
        user_id=2,
        title="Quarterly Planning",
        start_time=datetime.datetime(2025, 7, 15, 9, 0),
        end_time=datetime.datetime(2025, 7, 15, 12, 0),
        attendees=12,
        status=ReservationStatus.confirmed,
        created_at=datetime.datetime(2025, 7, 1, 10, 15),
        notes="Need projector and video conferencing setup",
    ),
    Reservation(
        reservation_id=2,
        room_id=3,
        user_id=3,
        title="Design Sprint",
        start_time=datetime.datetime(2025, 7, 16, 13, 0),
        end_time=datetime.datetime(2025, 7, 16, 17, 0),
        attendees=5,
        status=ReservationStatus.confirmed,
        created_at=datetime.datetime(2025, 7, 2, 14, 30),
        notes="Will need extra creative supplies",
    ),
    Reservation(
        reservation_id=3,
        room_id=2,
        user_id=2,
        title="Client Meeting",
        start_time=datetime.datetime(2025, 7, 17, 10, 0),
        end_time=datetime.datetime(2025, 7, 17, 11, 30),
        attendees=6,
        status=ReservationStatus.pending,
        created_at=datetime.datetime(2025, 7, 5, 9, 45),
        notes="Prepare presentation materials",
    ),
    Reservation(
        reservation_id=4,
        room_id=5,
        user_id=1,
        title="Executive Meeting",
        start_time=datetime.datetime(2025, 7, 18, 15, 0),
        end_time=datetime.datetime(2025, 7, 18, 17, 0),
        attendees=3,
        status=ReservationStatus.pending,
        created_at=datetime.datetime(2025, 7, 11, 11, 15),
        notes="Confidential meeting",
    ),
    Reservation(
        reservation_id=5,
        room_id=6,
        user_id=3,
        title="Product Launch Rehearsal",
        start_time=datetime.datetime(2025, 7, 14, 14, 0),
        end_time=datetime.datetime(2025, 7, 14, 16, 0),
        attendees=8,
        status=ReservationStatus.cancelled,
        created_at=datetime.datetime(2025, 7, 3, 16, 20),
        notes="Cancelled by the organiser",
    ),
]


def seed_mock_data(store: ReservationStore) -> None:
    """Load the demo rooms and reservations into an empty store."""
    store.restore(rooms=MOCK_ROOMS, reservations=MOCK_RESERVATIONS)


def simulate_room(
    store: ReservationStore,
    name: str,
    capacity: int,
    bookings: dict[ReservationStatus, list[TimeInterval]] | None = None,
    user_id: UserId = 1,
    **room_details,
) -> RoomId:
    """Add a room to the store, optionally with existing bookings.

    Parameters
    ----------
    name
        The room name.
    capacity
        The maximum number of people the room can host.
    bookings
        Time intervals when the room is booked, keyed by the status of the
        bookings. Set to `None` if there is no booking for this room.
    user_id
        Who made the bookings.
    room_details
        Any other `RoomInput` field, eg `floor` or `amenities`.

    Notes
    -----
    1. Bookings are loaded as they are, so confirmed bookings passed in are
    not checked against each other.
    """

    room = store.add_room(RoomInput(name=name, capacity=capacity, **room_details))
    if bookings is not None:
        for status, intervals in bookings.items():
            for interval in intervals:
                simulate_reservation(
                    store,
                    room_id=room.room_id,
                    interval=interval,
                    status=status,
                    user_id=user_id,
                )
    return room.room_id


def simulate_reservation(
    store: ReservationStore,
    room_id: RoomId,
    interval: TimeInterval,
    status: ReservationStatus = ReservationStatus.pending,
    user_id: UserId = 1,
    title: str = "Team meeting",
    attendees: int = 1,
) -> Reservation:
    """Store a reservation with a given status for an existing room."""
    reservation = Reservation(
        reservation_id=store.context.next_id(DatabaseNamespace.RESERVATIONS),
        room_id=room_id,
        user_id=user_id,
        title=title,
        start_time=interval.start,
        end_time=interval.end,
        attendees=attendees,
        status=status,
        created_at=now_(),
    )
    store.restore(reservations=[reservation])
    return reservation

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import pytest
from rich.console import Console

from cowork.conflicts import pending_with_conflicts
from cowork.display import (
    display_outcome,
    display_reservations,
    display_rooms,
    summarise_reservation,
)
from cowork.seed import seed_mock_data


@pytest.fixture
def console() -> Console:
    return Console(record=True, width=200)


@pytest.fixture(autouse=True)
def mock_data(store):
    seed_mock_data(store)


def test_display_rooms(store, console):
    display_rooms(store.list_rooms(), console=console)
    output = console.export_text()
    assert "Orion Conference Room" in output
    assert "Gemini Creative Hub" in output
    assert "NO" in output


def test_display_reservations_flags_conflicts(store, workflow, console):
    workflow.force_create(
        {
            "room_id": 1,
            "user_id": 3,
            "title": "Overlapping Sync",
            "start_time": "2025-07-15T11:00",
            "end_time": "2025-07-15T13:00",
            "attendees": 2,
        }
    )
    reservations = store.list_all()
    rooms = {room.room_id: room for room in store.list_rooms()}
    display_reservations(
        reservations,
        rooms,
        conflicting=pending_with_conflicts(reservations),
        console=console,
    )
    lines = console.export_text().splitlines()
    [flagged] = [line for line in lines if "Overlapping Sync" in line]
    assert "YES" in flagged
    [clear] = [line for line in lines if "Client Meeting" in line]
    assert "YES" not in clear


def test_display_outcome(workflow, console):
    display_outcome("Approve #3", workflow.approve(3), console=console)
    display_outcome("Approve #1", workflow.approve(1), console=console)
    output = console.export_text()
    assert "Approve #3: Reservation 3 approved" in output
    assert "Approve #1 (invalid_transition)" in output


def test_summarise_reservation(store):
    reservation = store.get(3)
    summary = summarise_reservation(reservation, store.get_room(reservation.room_id))
    assert summary.splitlines()[2:6] == [
        "Room: Phoenix Meeting Room",
        "Date: 2025-07-17",
        "Time: 10:00 to 11:30",
        "Duration: 1.5 hours",
    ]
    assert "pending approval" in summary
    assert "Status: confirmed" in summarise_reservation(store.get(1))

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from cowork.models import Reservation, ReservationId, ReservationStatus, Room, RoomId
from cowork.outcome import Outcome
from cowork.time_utils import TimeUnits

STATUS_STYLES = {
    ReservationStatus.pending: "yellow",
    ReservationStatus.confirmed: "green",
    ReservationStatus.rejected: "red",
    ReservationStatus.cancelled: "dim",
}


def display_rooms(rooms: list[Room], console: Console | None = None):
    """Display the rooms as a rich table with the following format

    ┏━━━━┳━━━━━━━━━━━━━━━━━━━━━┳━━━━━━━┳━━━━━━━━━━┳━━━━━━━━━━━┳━━━━━━━━━━━━┓
    ┃ ID ┃ Room                ┃ Floor ┃ Capacity ┃ Rate/hour ┃ Available  ┃
    ┡━━━━╇━━━━━━━━━━━━━━━━━━━━━╇━━━━━━━╇━━━━━━━━━━╇━━━━━━━━━━━╇━━━━━━━━━━━━┩
    """  # noqa

    console = console or Console()
    table = Table(show_header=True, header_style="bold magenta", expand=True)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Room", style="white")
    table.add_column("Floor", justify="right")
    table.add_column("Capacity", justify="right")
    table.add_column("Rate/hour", justify="right")
    table.add_column("Amenities", style="dim")
    table.add_column("Available", justify="center")

    for room in sorted(rooms, key=lambda r: r.room_id):
        table.add_row(
            str(room.room_id),
            room.name,
            str(room.floor),
            str(room.capacity),
            f"{room.hourly_rate:,.0f}",
            ", ".join(room.amenities),
            (
                Text("YES", style="green")
                if room.is_available
                else Text("NO", style="red")
            ),
        )

    console.print(table)


def display_reservations(
    reservations: list[Reservation],
    rooms: dict[RoomId, Room],
    conflicting: set[ReservationId] | None = None,
    console: Console | None = None,
):
    """Display reservations sorted by start time. Pending reservations which
    overlap a confirmed booking (`conflicting`) are flagged.

    ┏━━━━┳━━━━━━━━━━━━━━━━━━┳━━━━━━━━━━━┳━━━━━━━━━━━━━━━━━━━┳━━━━━━━━━━━┳━━━━━━━━━━┓
    ┃ ID ┃ Title            ┃ Room      ┃ When              ┃ Status    ┃ Conflict ┃
    ┡━━━━╇━━━━━━━━━━━━━━━━━━╇━━━━━━━━━━━╇━━━━━━━━━━━━━━━━━━━╇━━━━━━━━━━━╇━━━━━━━━━━┩
    """  # noqa

    conflicting = conflicting or set()
    console = console or Console()
    table = Table(show_header=True, header_style="bold magenta", expand=True)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Room", style="dim")
    table.add_column("When", no_wrap=True)
    table.add_column("Attendees", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Conflict", justify="center", style="red")

    for reservation in sorted(reservations, key=lambda r: r.start_time):
        room = rooms.get(reservation.room_id)
        table.add_row(
            str(reservation.reservation_id),
            reservation.title,
            room.name if room else f"#{reservation.room_id}",
            _format_slot(reservation),
            str(reservation.attendees),
            Text(
                str(reservation.status),
                style=STATUS_STYLES.get(reservation.status, "white"),
            ),
            "YES" if reservation.reservation_id in conflicting else "",
        )

    console.print(table)


def display_outcome(action: str, outcome: Outcome, console: Console | None = None):
    console = console or Console()
    message = escape(outcome.message)
    if outcome.ok:
        console.print(f"[bold green]{action}:[/bold green] {message}")
    elif outcome.is_warning:
        console.print(f"[bold yellow]{action}:[/bold yellow] {message}")
    else:
        console.print(
            f"[bold red]{action} ({outcome.error}):[/bold red] {message}"
        )


def _format_slot(reservation: Reservation) -> str:
    start = reservation.start_time.strftime("%Y-%m-%d %H:%M")
    if reservation.end_time.date() == reservation.start_time.date():
        return f"{start} - {reservation.end_time.strftime('%H:%M')}"
    return f"{start} - {reservation.end_time.strftime('%Y-%m-%d %H:%M')}"


def _format_hours(reservation: Reservation) -> str:
    hours = reservation.interval.duration(TimeUnits.Hours).number
    return f"{hours:g} hour" if hours == 1 else f"{hours:g} hours"


def summarise_reservation(reservation: Reservation, room: Room | None = None) -> str:
    """Create a concise plain-text summary of a reservation, eg for sharing
    with the attendees."""
    lines = [
        "Room Reservation Details",
        "",
        f"Room: {room.name if room else reservation.room_id}",
        f"Date: {reservation.start_time.strftime('%Y-%m-%d')}",
        f"Time: {reservation.start_time.strftime('%H:%M')} to "
        f"{reservation.end_time.strftime('%H:%M')}",
        f"Duration: {_format_hours(reservation)}",
        f"Title: {reservation.title}",
        f"Attendees: {reservation.attendees}",
        "",
    ]
    if reservation.status == ReservationStatus.pending:
        lines.append(
            "Your reservation is pending approval. "
            "You will be notified once it's confirmed."
        )
    else:
        lines.append(f"Status: {reservation.status}")
    return "\n".join(lines)

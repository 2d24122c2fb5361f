#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto

import polars as pl

from cowork.models import ReservationStatus


class DatabaseNamespace(StrEnum):
    """Namespace for each database"""

    ROOMS = auto()
    RESERVATIONS = auto()
    # messages for requesters about their reservations
    NOTIFICATIONS = auto()


DATABASE_SCHEMAS = {
    DatabaseNamespace.ROOMS: {
        "room_id": pl.Int64,
        "name": pl.String,
        "room_type": pl.String,
        "capacity": pl.Int32,
        "floor": pl.Int32,
        "hourly_rate": pl.Float64,
        "amenities": pl.List(pl.String),
        "description": pl.String,
        "parking_capacity_cars": pl.Int32,
        "parking_capacity_motorcycles": pl.Int32,
        "is_available": pl.Boolean,
    },
    DatabaseNamespace.RESERVATIONS: {
        "reservation_id": pl.Int64,
        "room_id": pl.Int64,
        "user_id": pl.Int64,
        "title": pl.String,
        "start_time": pl.Datetime,
        "end_time": pl.Datetime,
        "attendees": pl.Int32,
        "notes": pl.String,
        "contact_phone": pl.String,
        "status": pl.Enum([x for x in ReservationStatus]),
        "created_at": pl.Datetime,
    },
    DatabaseNamespace.NOTIFICATIONS: {
        "notification_id": pl.Int64,
        "user_id": pl.Int64,
        "title": pl.String,
        "message": pl.String,
        "type": pl.String,
        "related_id": pl.Int64,
        "read": pl.Boolean,
        "created_at": pl.Datetime,
    },
}

# the column holding each table's integer identity
ID_COLUMNS = {
    DatabaseNamespace.ROOMS: "room_id",
    DatabaseNamespace.RESERVATIONS: "reservation_id",
    DatabaseNamespace.NOTIFICATIONS: "notification_id",
}

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Tell requesters what happened to their reservations."""

import datetime
import logging
from typing import NamedTuple, Protocol, runtime_checkable

import polars as pl
from polars.exceptions import NoDataError
from pydantic import BaseModel

from cowork.exceptions import NotFoundError
from cowork.models import ReservationId, ReservationStatus, UserId
from cowork.simulation.database_schemas import DatabaseNamespace
from cowork.store import ReservationStore
from cowork.time_utils import now_

logger = logging.getLogger(__name__)

NotificationId = int

RESERVATION_NOTIFICATION_TYPE = "reservation"
TITLES = {
    ReservationStatus.confirmed: "Reservation Approved",
    ReservationStatus.rejected: "Reservation Rejected",
}
VERBS = {
    ReservationStatus.confirmed: "approved",
    ReservationStatus.rejected: "rejected",
}


class StatusChange(NamedTuple):
    """A reservation moved to `new_status`; `owner_user_id` made the booking."""

    reservation_id: ReservationId
    new_status: ReservationStatus
    owner_user_id: UserId


@runtime_checkable
class Notifier(Protocol):
    """Anything the approval workflow can report status changes to."""

    def notify(self, change: StatusChange) -> None: ...


class NullNotifier:
    def notify(self, change: StatusChange) -> None:
        logger.debug(f"Dropping notification for {change}")


class Notification(BaseModel):
    notification_id: NotificationId
    user_id: UserId
    title: str
    message: str
    type: str = RESERVATION_NOTIFICATION_TYPE
    related_id: int | None = None
    read: bool = False
    created_at: datetime.datetime


class InboxNotifier:
    """Keeps notifications in the NOTIFICATIONS table of the store's
    execution context, where the user interface can pick them up."""

    def __init__(self, store: ReservationStore):
        self.store = store
        self.context = store.context

    def _room_name(self, reservation_id: ReservationId) -> str | None:
        try:
            reservation = self.store.get(reservation_id)
            return self.store.get_room(reservation.room_id).name
        except NotFoundError:
            return None

    def notify(self, change: StatusChange) -> None:
        status = change.new_status
        verb = VERBS.get(status, str(status))
        room_name = self._room_name(change.reservation_id)
        target = f'"{room_name}"' if room_name else f"#{change.reservation_id}"
        with self.context.transaction():
            notification = Notification(
                notification_id=self.context.next_id(DatabaseNamespace.NOTIFICATIONS),
                user_id=change.owner_user_id,
                title=TITLES.get(status, f"Reservation {verb.capitalize()}"),
                message=f"Your reservation for {target} has been {verb}.",
                related_id=change.reservation_id,
                created_at=now_(),
            )
            self.context.add_to_database(
                DatabaseNamespace.NOTIFICATIONS, rows=[notification.model_dump()]
            )
        logger.info(
            f"Notified user {change.owner_user_id}: reservation "
            f"{change.reservation_id} {verb}"
        )

    def list_for_user(
        self, user_id: UserId, unread_only: bool = False
    ) -> list[Notification]:
        """The notifications addressed to `user_id`, newest first."""
        records = self.context.get_database(DatabaseNamespace.NOTIFICATIONS).filter(
            pl.col("user_id") == user_id
        )
        if unread_only:
            records = records.filter(~pl.col("read"))
        notifications = [Notification(**r) for r in records.to_dicts()]
        notifications.sort(key=lambda n: n.notification_id, reverse=True)
        return notifications

    def mark_as_read(self, notification_id: NotificationId) -> None:
        """Raises
        ------
        NotFoundError if there is no notification with `notification_id`.
        """
        try:
            self.context.update_database(
                DatabaseNamespace.NOTIFICATIONS,
                predicate=pl.col("notification_id") == notification_id,
                values={"read": True},
            )
        except NoDataError:
            raise NotFoundError(f"Notification {notification_id} not found")

    def clear(self) -> None:
        try:
            self.context.remove_from_database(
                DatabaseNamespace.NOTIFICATIONS, predicate=pl.lit(True)
            )
        except NoDataError:
            pass

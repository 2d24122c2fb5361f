#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Tagged results returned by the approval workflow."""

from enum import StrEnum, auto
from typing import Generic, Self, TypeVar

from pydantic import BaseModel, PrivateAttr

from cowork.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ReservationError,
    StatusTransitionError,
    ValidationError,
)
from cowork.models import Reservation

T = TypeVar("T")


class ErrorKind(StrEnum):
    validation = auto()
    not_found = auto()
    conflict = auto()
    # a conflict found before creating a reservation, which the requester
    # may override by force-submitting
    conflict_warning = auto()
    invalid_transition = auto()
    permission_denied = auto()


_ERROR_KINDS: dict[type[ReservationError], ErrorKind] = {
    ValidationError: ErrorKind.validation,
    NotFoundError: ErrorKind.not_found,
    ConflictError: ErrorKind.conflict,
    StatusTransitionError: ErrorKind.invalid_transition,
    PermissionDeniedError: ErrorKind.permission_denied,
}


class Outcome(BaseModel, Generic[T]):
    """Either the value an operation produced or the reason it was refused.

    Parameters
    ----------
    value
        Set when the operation succeeded.
    error
        Set when the operation was refused. No state was changed.
    message
        A human-readable account of what happened, suitable for showing
        to the user.
    conflicts
        For conflicts and conflict warnings, the confirmed reservations that
        stand in the way.
    field_errors
        For validation failures, the message for each offending field.
    """

    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""
    conflicts: list[Reservation] = []
    field_errors: dict[str, str] = {}
    _exception: ReservationError | None = PrivateAttr(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_warning(self) -> bool:
        return self.error == ErrorKind.conflict_warning

    @classmethod
    def success(cls, value: T, message: str = "") -> Self:
        return cls(value=value, message=message)

    @classmethod
    def failure(
        cls,
        exception: ReservationError,
        conflicts: list[Reservation] | None = None,
        warning: bool = False,
    ) -> Self:
        kind = _ERROR_KINDS.get(type(exception))
        if kind is None:
            raise TypeError(f"Cannot report {type(exception).__name__} as an outcome")
        if warning:
            assert kind == ErrorKind.conflict, "Only conflicts can be overridden"
            kind = ErrorKind.conflict_warning
        outcome = cls(
            error=kind,
            message=str(exception),
            conflicts=conflicts or [],
            field_errors=getattr(exception, "errors", {}),
        )
        outcome._exception = exception
        return outcome

    def unwrap(self) -> T:
        """Return the value, or raise the error that refused the operation."""
        if self.ok:
            return self.value
        assert self._exception is not None
        raise self._exception

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import Self

import pydantic


class ReservationError(Exception):
    pass


class ValidationError(ReservationError):
    """Raised when a reservation or room input is malformed.

    Parameters
    ----------
    errors
        Maps each offending field to a human-readable message.
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(f"Invalid input - {details}")

    @classmethod
    def from_pydantic(cls, error: pydantic.ValidationError) -> Self:
        return cls(
            {".".join(str(x) for x in err["loc"]): err["msg"] for err in error.errors()}
        )


class NotFoundError(ReservationError):
    pass


class ConflictError(ReservationError):
    """Raised when a mutation would double-book a room.

    Parameters
    ----------
    conflicting_ids
        The ids of the confirmed reservations the mutation overlaps.
    """

    def __init__(self, message: str, conflicting_ids: list[int] | None = None):
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(message)


class StatusTransitionError(ReservationError):
    pass


class PermissionDeniedError(ReservationError):
    pass

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""A light wrapper around the `datetime` library, containing the interval
arithmetic used to decide whether bookings overlap and to extend them."""

import datetime
from enum import Enum
from typing import NamedTuple, Self

from dateutil import parser as dateutil_parser

from cowork.exceptions import ValidationError

TimeUnits = Enum("TimeUnits", ["Hours", "Minutes", "Days"])
"""Enumerations used for parsing durations to specific time units"""


class Duration(NamedTuple):
    """A time unit, for representing booking extensions.

    Parameters
    ----------
    number
        A float or integer representing the length of time.
    unit
        The unit of time used to measure the duration.
    """

    number: int | float
    unit: TimeUnits


def cast_to_timedelta(duration: Duration) -> datetime.timedelta:
    if duration.unit == TimeUnits.Hours:
        return datetime.timedelta(hours=duration.number)
    elif duration.unit == TimeUnits.Minutes:
        return datetime.timedelta(minutes=duration.number)
    elif duration.unit == TimeUnits.Days:
        return datetime.timedelta(days=duration.number)
    else:
        raise ValueError(f"Unsupported time unit: {duration.unit}")


class TimeInterval(NamedTuple):
    """Represents the half-open time interval `[start, end)` between two
    specific time points."""

    start: datetime.datetime
    end: datetime.datetime

    @property
    def is_degenerate(self) -> bool:
        """An interval whose end does not come strictly after its start."""
        return self.end <= self.start

    def overlaps(self, other: Self) -> bool:
        """Check if this interval shares any instant with `other`.

        Back-to-back intervals (one ends exactly when the other starts)
        do not overlap.
        """
        return self.start < other.end and self.end > other.start

    def duration(self, unit: TimeUnits = TimeUnits.Minutes) -> Duration:
        """The length of the interval in `unit`."""
        seconds = (self.end - self.start).total_seconds()
        if unit == TimeUnits.Hours:
            number = seconds / 3600
        elif unit == TimeUnits.Minutes:
            number = seconds / 60
        elif unit == TimeUnits.Days:
            number = seconds / 86400
        else:
            raise ValueError(f"Unsupported time unit: {unit}")
        return Duration(number=number, unit=unit)


def now_() -> datetime.datetime:
    """Return the current date and time, to the second."""
    return datetime.datetime.now().replace(microsecond=0)


def parse_timestamp(value: str | datetime.datetime) -> datetime.datetime:
    """Parse an ISO 8601 timestamp such as ``2025-07-15T09:00`` into a naive
    `datetime`. Timezone information, if present, is dropped.

    Raises
    ------
    ValidationError if `value` cannot be parsed.
    """
    if isinstance(value, datetime.datetime):
        return value.replace(tzinfo=None)
    try:
        return dateutil_parser.isoparse(value).replace(tzinfo=None)
    except (ValueError, OverflowError) as e:
        raise ValidationError({"timestamp": f"Could not parse '{value}': {e}"})


def extend(end: datetime.datetime, by: Duration) -> datetime.datetime:
    """Shift `end` later by `by`."""
    return end + cast_to_timedelta(by)

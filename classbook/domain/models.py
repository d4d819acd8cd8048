"""Domain models for bookable class schedules.

These are plain value objects. ORM rows live in classbook/models.py and are
converted at the store boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union


@dataclass(frozen=True)
class Standalone:
    """A one-off booking that belongs to no series."""


@dataclass(frozen=True)
class SeriesRoot:
    """First booking of a weekly series; owns the recurrence rule."""

    rrule: str


@dataclass(frozen=True)
class SeriesOccurrence:
    """A generated booking that points back to its series root."""

    parent_id: int
    is_exception: bool = False


ScheduleKind = Union[Standalone, SeriesRoot, SeriesOccurrence]


@dataclass(frozen=True)
class Schedule:
    id: int
    organization_id: int
    student_id: int
    program_id: int | None
    start_time: datetime
    end_time: datetime
    kind: ScheduleKind

    @property
    def parent_schedule_id(self) -> int | None:
        if isinstance(self.kind, SeriesOccurrence):
            return self.kind.parent_id
        return None

    @property
    def rrule(self) -> str | None:
        if isinstance(self.kind, SeriesRoot):
            return self.kind.rrule
        return None

    @property
    def is_exception(self) -> bool:
        return isinstance(self.kind, SeriesOccurrence) and self.kind.is_exception

    @property
    def series_id(self) -> int | None:
        """Id of the series root this booking belongs to, if any."""
        if isinstance(self.kind, SeriesRoot):
            return self.id
        if isinstance(self.kind, SeriesOccurrence):
            return self.kind.parent_id
        return None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class ScheduleDraft:
    """A schedule that has not been persisted yet."""

    organization_id: int
    student_id: int
    program_id: int | None
    start_time: datetime
    end_time: datetime
    kind: ScheduleKind

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time')


@dataclass(frozen=True)
class ScheduleChanges:
    """Field changes for a single stored schedule."""

    student_id: int
    program_id: int | None
    start_time: datetime
    end_time: datetime
    is_exception: bool | None = None


@dataclass(frozen=True)
class SeriesChanges:
    """Changes applied row by row to the remaining occurrences of a series.

    Each row keeps its own date, moved by ``start_shift``, and gets the new
    ``duration``.
    """

    student_id: int
    program_id: int | None
    start_shift: timedelta
    duration: timedelta

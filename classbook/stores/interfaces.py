"""Store interfaces (repository pattern) consumed by the scheduling engine.

Stores must be swappable and return domain models. Write methods only stage
changes; they become durable when the enclosing ``transaction`` exits cleanly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime

from classbook.domain.models import Schedule, ScheduleChanges, ScheduleDraft, SeriesChanges


class ScheduleStore(ABC):
    """Interface for schedule persistence operations."""

    @abstractmethod
    def transaction(self, organization_id: int) -> AbstractContextManager[None]:
        """Serialize booking writes for one organization and commit on exit.

        Reads used for gating and the writes that follow them must happen
        inside the same transaction.
        """
        ...

    @abstractmethod
    def insert_schedule(self, draft: ScheduleDraft) -> Schedule:
        """Insert one schedule and return it with its assigned id."""
        ...

    @abstractmethod
    def insert_schedules(self, drafts: list[ScheduleDraft]) -> list[Schedule]:
        """Insert several schedules, preserving input order."""
        ...

    @abstractmethod
    def get_schedule(self, schedule_id: int) -> Schedule | None:
        """Return a schedule by id, or None if not found."""
        ...

    @abstractmethod
    def update_schedule(self, schedule_id: int, changes: ScheduleChanges) -> Schedule:
        """Apply changes to one schedule and return the updated record."""
        ...

    @abstractmethod
    def update_schedules_where(self, parent_id: int, from_time: datetime, changes: SeriesChanges) -> int:
        """Apply series changes to occurrences of ``parent_id`` starting at or after ``from_time``."""
        ...

    @abstractmethod
    def delete_schedule(self, schedule_id: int) -> None:
        """Physically remove one schedule."""
        ...

    @abstractmethod
    def delete_schedules_where(self, parent_id: int, from_time: datetime) -> int:
        """Remove occurrences of ``parent_id`` starting at or after ``from_time``."""
        ...

    @abstractmethod
    def count_overlapping(
        self,
        organization_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> int:
        """Count organization schedules overlapping the half-open interval [start, end)."""
        ...

    @abstractmethod
    def count_overlapping_for_student(
        self,
        student_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> int:
        """Count a student's schedules (any organization) overlapping [start, end)."""
        ...

    @abstractmethod
    def promote_series_root(self, root_id: int) -> Schedule | None:
        """Make the earliest occurrence of a series its new root.

        Returns the promoted schedule, or None when the series has no
        occurrences left.
        """
        ...


class SettingsReader(ABC):
    """Read access to per-organization booking settings."""

    @abstractmethod
    def get_max_concurrent_students(self, organization_id: int) -> int:
        ...


class ProfileReader(ABC):
    """Read access to student enrollment attributes."""

    @abstractmethod
    def get_class_end_date(self, student_id: int) -> date | None:
        ...

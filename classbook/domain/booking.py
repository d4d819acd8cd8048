"""Booking request and result types exchanged with the scheduling engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Union

from classbook.core import kst
from classbook.core.slots import duration_for_slots


class ActingRole(str, Enum):
    ADMIN = 'admin'
    STUDENT = 'student'


class MutationScope(str, Enum):
    SINGLE = 'single'
    FUTURE = 'future'


class RejectionReason(str, Enum):
    OUT_OF_WINDOW = 'out_of_window'
    CAPACITY_EXCEEDED = 'capacity_exceeded'
    STUDENT_CONFLICT = 'student_conflict'
    MISSING_ENROLLMENT_END_DATE = 'missing_enrollment_end_date'
    PAST_SCHEDULE = 'past_schedule'


@dataclass(frozen=True)
class BookingRequest:
    organization_id: int
    student_id: int
    date: date
    start_time: time
    duration_slots: int = 1
    program_id: int | None = None
    recurring: bool = False

    def __post_init__(self) -> None:
        duration_for_slots(self.duration_slots)

    def interval(self) -> tuple[datetime, datetime]:
        start = kst.combine(self.date, self.start_time)
        return start, start + duration_for_slots(self.duration_slots)


@dataclass(frozen=True)
class BookingChanges:
    """New field values for an existing booking."""

    student_id: int
    date: date
    start_time: time
    duration_slots: int = 1
    program_id: int | None = None

    def __post_init__(self) -> None:
        duration_for_slots(self.duration_slots)

    def interval(self) -> tuple[datetime, datetime]:
        start = kst.combine(self.date, self.start_time)
        return start, start + duration_for_slots(self.duration_slots)


@dataclass(frozen=True)
class CapacityCheck:
    allowed: bool
    current_count: int
    max_count: int


@dataclass(frozen=True)
class Created:
    schedule_id: int
    occurrence_count: int = 0


@dataclass(frozen=True)
class Updated:
    schedule_id: int
    affected_count: int = 1


@dataclass(frozen=True)
class Deleted:
    schedule_id: int
    deleted_count: int = 1


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return rejection_message(self.reason, self.detail)


BookingResult = Union[Created, Rejected]


def rejection_message(reason: RejectionReason, detail: dict[str, Any]) -> str:
    if reason == RejectionReason.OUT_OF_WINDOW:
        window_start = detail.get('allowed_start')
        window_end = detail.get('allowed_end')
        if window_start and window_end:
            return f'Bookings are only open from {window_start} to {window_end}.'
        return 'Bookings are not open for this date.'
    if reason == RejectionReason.CAPACITY_EXCEEDED:
        return (
            f"Maximum concurrent students ({detail.get('max')}) exceeded for this time slot. "
            f"{detail.get('current')} currently booked."
        )
    if reason == RejectionReason.STUDENT_CONFLICT:
        return 'The student already has a class booked at an overlapping time.'
    if reason == RejectionReason.MISSING_ENROLLMENT_END_DATE:
        return 'The student has no class end date configured for a recurring series.'
    if detail.get('same_day'):
        return 'Same-day bookings cannot be cancelled. Please contact your instructor.'
    return 'Bookings in the past cannot be created, changed or cancelled.'

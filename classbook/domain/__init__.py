from classbook.domain.booking import (
    ActingRole,
    BookingChanges,
    BookingRequest,
    BookingResult,
    CapacityCheck,
    Created,
    Deleted,
    MutationScope,
    Rejected,
    RejectionReason,
    Updated,
)
from classbook.domain.errors import BookingPermissionError, ScheduleNotFoundError
from classbook.domain.models import (
    Schedule,
    ScheduleChanges,
    ScheduleDraft,
    ScheduleKind,
    SeriesChanges,
    SeriesOccurrence,
    SeriesRoot,
    Standalone,
)

__all__ = [
    'ActingRole',
    'BookingChanges',
    'BookingPermissionError',
    'BookingRequest',
    'BookingResult',
    'CapacityCheck',
    'Created',
    'Deleted',
    'MutationScope',
    'Rejected',
    'RejectionReason',
    'Schedule',
    'ScheduleChanges',
    'ScheduleDraft',
    'ScheduleKind',
    'ScheduleNotFoundError',
    'SeriesChanges',
    'SeriesOccurrence',
    'SeriesRoot',
    'Standalone',
    'Updated',
]

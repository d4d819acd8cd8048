"""Errors raised by the scheduling core.

Expected booking rejections are not exceptions; they are returned as
``Rejected`` values (see classbook/domain/booking.py).
"""


class ScheduleNotFoundError(LookupError):
    """Raised when a schedule id does not exist."""

    def __init__(self, schedule_id: int) -> None:
        super().__init__('Schedule not found')
        self.schedule_id = schedule_id


class BookingPermissionError(PermissionError):
    """Raised when a student acts on a booking that is not theirs."""

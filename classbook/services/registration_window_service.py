"""Rolling self-service registration window, evaluated in KST.

Students may book any date in the current KST month. From
``registration_open_next_month_day`` onwards the following month opens
as well. Administrators bypass this policy.
"""

from __future__ import annotations

from datetime import date, datetime

from classbook.config import settings
from classbook.core import kst


def _open_day(open_day: int | None) -> int:
    return int(open_day if open_day is not None else settings.registration_open_next_month_day)


def allowed_range(*, now: datetime, open_day: int | None = None) -> tuple[datetime, datetime]:
    today = kst.to_components(now)
    start = kst.from_components(today.year, today.month, 1)
    months_ahead = 2 if today.day >= _open_day(open_day) else 1
    end = kst.from_components(today.year, today.month + months_ahead, 0, 23, 59, 59, 999999)
    return start, end


def can_register(target_date: date, *, now: datetime, open_day: int | None = None) -> bool:
    today = kst.to_components(now)
    if target_date.year == today.year and target_date.month - 1 == today.month:
        return True
    if today.day < _open_day(open_day):
        return False
    following = kst.to_components(kst.from_components(today.year, today.month + 1, 1))
    return target_date.year == following.year and target_date.month - 1 == following.month


def can_cancel(schedule_start: datetime, *, now: datetime) -> bool:
    """Only bookings on a later KST date than today may be cancelled."""
    return kst.kst_date(schedule_start) > kst.kst_date(now)


def is_past_date(schedule_start: datetime, *, now: datetime) -> bool:
    return kst.kst_date(schedule_start) < kst.kst_date(now)

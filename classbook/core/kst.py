"""Fixed-offset Korea Standard Time (UTC+9) calendar arithmetic.

All wall-clock reasoning in the service goes through this module so that
results never depend on the host timezone. Instants are timezone-aware UTC
datetimes; calendar components follow the JavaScript-style convention the
booking rules were written against: ``month`` is 0-indexed and out-of-range
day/month/hour values roll over like a proleptic Gregorian calendar
(``day=0`` is the last day of the previous month).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


KST_OFFSET = timedelta(hours=9)
KST = timezone(KST_OFFSET, 'KST')


@dataclass(frozen=True)
class KSTComponents:
    year: int
    month: int  # 0-indexed
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0
    microsecond: int = 0

    def to_date(self) -> date:
        return date(self.year, self.month + 1, self.day)


def require_aware(instant: datetime) -> datetime:
    if instant.tzinfo is None or instant.tzinfo.utcoffset(instant) is None:
        raise ValueError('Naive datetime not allowed in business logic')
    return instant


def to_components(instant: datetime) -> KSTComponents:
    shifted = require_aware(instant).astimezone(timezone.utc) + KST_OFFSET
    return KSTComponents(
        year=shifted.year,
        month=shifted.month - 1,
        day=shifted.day,
        hour=shifted.hour,
        minute=shifted.minute,
        second=shifted.second,
        microsecond=shifted.microsecond,
    )


def from_components(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    microsecond: int = 0,
) -> datetime:
    carry_years, month_index = divmod(month, 12)
    first_of_month = datetime(year + carry_years, month_index + 1, 1, tzinfo=timezone.utc)
    return first_of_month + timedelta(
        days=day - 1,
        hours=hour,
        minutes=minute,
        seconds=second,
        microseconds=microsecond,
    ) - KST_OFFSET


def now(time_provider) -> KSTComponents:
    return to_components(time_provider.now())


def date_key(instant: datetime) -> str:
    parts = to_components(instant)
    return f'{parts.year:04d}-{parts.month + 1:02d}-{parts.day:02d}'


def kst_date(instant: datetime) -> date:
    return to_components(instant).to_date()


def combine(day: date, clock: time) -> datetime:
    """UTC instant for a KST calendar date and wall-clock time."""
    return from_components(day.year, day.month - 1, day.day, clock.hour, clock.minute, clock.second)


def start_of_day(day: date) -> datetime:
    return from_components(day.year, day.month - 1, day.day)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last instant of a KST month; ``month`` is 1-indexed here."""
    start = from_components(year, month - 1, 1)
    end = from_components(year, month, 0, 23, 59, 59, 999999)
    return start, end

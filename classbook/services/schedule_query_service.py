"""Read-side schedule listings and student statistics.

All calendar bounds are computed in KST. Listings are serialized to plain
dicts so they can be cached and returned by the API unchanged.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from classbook.cache import SCHEDULES_PREFIX, cache, cache_key
from classbook.core import kst
from classbook.metrics import timed_service
from classbook.models import Profile, Role, Schedule
from classbook.services.recurrence_service import parse_weekly_rrule
from classbook.stores.sqlalchemy_store import from_db_time, to_db_time


logger = logging.getLogger(__name__)


def _kind_name(row: Schedule) -> str:
    if row.parent_schedule_id is not None:
        return 'occurrence'
    if row.rrule:
        return 'series_root'
    return 'standalone'


def serialize_schedule(row: Schedule) -> dict[str, Any]:
    start_time = from_db_time(row.start_time)
    end_time = from_db_time(row.end_time)
    student = row.student
    program = row.program
    return {
        'id': row.id,
        'organization_id': row.organization_id,
        'student_id': row.student_id,
        'student_name': student.name if student else None,
        'student_color': student.color if student else None,
        'program_id': row.program_id,
        'program_title': program.title if program else None,
        'start_time': start_time.isoformat(),
        'end_time': end_time.isoformat(),
        'date': kst.date_key(start_time),
        'kind': _kind_name(row),
        'rrule': row.rrule,
        'series_until': parse_weekly_rrule(row.rrule).isoformat() if row.rrule else None,
        'parent_schedule_id': row.parent_schedule_id,
        'is_exception': bool(row.is_exception),
    }


def _hours(rows: Iterable[Schedule]) -> float:
    total = timedelta()
    for row in rows:
        total += row.end_time - row.start_time
    return total.total_seconds() / 3600.0


def _rounded(hours: float) -> float:
    return round(hours * 10) / 10


def _listing_query(db: Session):
    return db.query(Schedule).options(joinedload(Schedule.student), joinedload(Schedule.program))


def _between(query, start: datetime, end: datetime):
    return query.filter(
        Schedule.start_time >= to_db_time(start),
        Schedule.start_time <= to_db_time(end),
    ).order_by(Schedule.start_time.asc(), Schedule.id.asc())


def _organization_listing(db: Session, organization_id: int, start: datetime, end: datetime) -> list[dict[str, Any]]:
    rows = _between(_listing_query(db).filter(Schedule.organization_id == organization_id), start, end).all()
    return [serialize_schedule(row) for row in rows]


def get_schedule(db: Session, schedule_id: int, *, organization_id: int | None = None) -> dict[str, Any] | None:
    query = _listing_query(db).filter(Schedule.id == schedule_id)
    if organization_id is not None:
        query = query.filter(Schedule.organization_id == organization_id)
    row = query.first()
    return serialize_schedule(row) if row else None


@timed_service('monthly_schedules')
def get_monthly_schedules(
    db: Session,
    organization_id: int,
    year: int,
    month: int,
    *,
    bypass_cache: bool = False,
) -> list[dict[str, Any]]:
    start, end = kst.month_bounds(year, month)
    return cache.get_or_load(
        cache_key(SCHEDULES_PREFIX, 'month', organization_id, f'{year:04d}-{month:02d}'),
        lambda: _organization_listing(db, organization_id, start, end),
        bypass=bypass_cache,
    )


@timed_service('daily_schedules')
def get_daily_schedules(
    db: Session,
    organization_id: int,
    day: date,
    *,
    bypass_cache: bool = False,
) -> list[dict[str, Any]]:
    start = kst.start_of_day(day)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return cache.get_or_load(
        cache_key(SCHEDULES_PREFIX, 'day', organization_id, day.isoformat()),
        lambda: _organization_listing(db, organization_id, start, end),
        bypass=bypass_cache,
    )


def get_student_schedules(
    db: Session,
    student_id: int,
    *,
    year: int | None = None,
    month: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict[str, Any]]:
    if year is not None and month is not None:
        start, end = kst.month_bounds(year, month)
    if start is None or end is None:
        raise ValueError('Either year and month or start and end are required')
    rows = _between(_listing_query(db).filter(Schedule.student_id == student_id), start, end).all()
    return [serialize_schedule(row) for row in rows]


def week_bounds(now: datetime, weeks_ahead: int = 0) -> tuple[datetime, datetime]:
    """Sunday 00:00 to Saturday 23:59:59.999999 (KST) of the week containing ``now``."""
    today = kst.kst_date(now)
    days_since_sunday = (today.weekday() + 1) % 7
    sunday = today - timedelta(days=days_since_sunday) + timedelta(days=7 * weeks_ahead)
    start = kst.start_of_day(sunday)
    return start, start + timedelta(days=7) - timedelta(microseconds=1)


def get_student_week_schedules(db: Session, student_id: int, *, now: datetime) -> list[dict[str, Any]]:
    start, end = week_bounds(now)
    return get_student_schedules(db, student_id, start=start, end=end)


def get_student_next_week_schedules(db: Session, student_id: int, *, now: datetime) -> list[dict[str, Any]]:
    start, end = week_bounds(now, weeks_ahead=1)
    return get_student_schedules(db, student_id, start=start, end=end)


def _past_rows(db: Session, student_id: int, now: datetime, start: datetime | None = None) -> list[Schedule]:
    query = db.query(Schedule).filter(
        Schedule.student_id == student_id,
        Schedule.start_time <= to_db_time(now),
    )
    if start is not None:
        query = query.filter(Schedule.start_time >= to_db_time(start))
    return query.all()


def calculate_student_total_hours(db: Session, student_id: int, *, now: datetime) -> float:
    return _hours(_past_rows(db, student_id, now))


def get_student_monthly_stats(db: Session, student_id: int, *, now: datetime) -> dict[str, Any]:
    today = kst.to_components(now)
    this_month_start = kst.from_components(today.year, today.month, 1)
    last_month_start = kst.from_components(today.year, today.month - 1, 1)
    last_month_end = kst.from_components(today.year, today.month, 0, 23, 59, 59, 999999)

    this_month = _past_rows(db, student_id, now, start=this_month_start)
    last_month = (
        db.query(Schedule)
        .filter(
            Schedule.student_id == student_id,
            Schedule.start_time >= to_db_time(last_month_start),
            Schedule.start_time <= to_db_time(last_month_end),
        )
        .all()
    )
    return {
        'this_month_hours': _rounded(_hours(this_month)),
        'last_month_hours': _rounded(_hours(last_month)),
        'this_month_count': len(this_month),
        'last_month_count': len(last_month),
    }


def get_student_yearly_stats(db: Session, student_id: int, year: int, *, now: datetime) -> list[dict[str, Any]]:
    year_start = kst.from_components(year, 0, 1)
    year_end = kst.from_components(year, 12, 0, 23, 59, 59, 999999)
    upper = min(year_end, now)
    rows = (
        db.query(Schedule)
        .filter(
            Schedule.student_id == student_id,
            Schedule.start_time >= to_db_time(year_start),
            Schedule.start_time <= to_db_time(upper),
        )
        .all()
    )
    monthly = {month: 0.0 for month in range(1, 13)}
    for row in rows:
        month = kst.to_components(from_db_time(row.start_time)).month + 1
        monthly[month] += (row.end_time - row.start_time).total_seconds() / 3600.0
    return [{'month': month, 'hours': _rounded(hours)} for month, hours in monthly.items()]


def get_student_streak(db: Session, student_id: int, *, now: datetime) -> int:
    """Consecutive KST days, ending today, on which a class has started."""
    days = {kst.kst_date(from_db_time(row.start_time)) for row in _past_rows(db, student_id, now)}
    streak = 0
    cursor = kst.kst_date(now)
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def get_student_stats(db: Session, student_id: int, *, now: datetime) -> dict[str, Any]:
    year = kst.to_components(now).year
    return {
        'total_hours': _rounded(calculate_student_total_hours(db, student_id, now=now)),
        'monthly': get_student_monthly_stats(db, student_id, now=now),
        'yearly': get_student_yearly_stats(db, student_id, year, now=now),
        'streak': get_student_streak(db, student_id, now=now),
    }


def get_dashboard_counts(db: Session, organization_id: int, *, now: datetime) -> dict[str, int]:
    today = kst.to_components(now)
    day_start = kst.from_components(today.year, today.month, today.day)
    day_end = kst.from_components(today.year, today.month, today.day + 1)
    month_start = kst.from_components(today.year, today.month, 1)
    month_end = kst.from_components(today.year, today.month + 1, 1)

    def _count(start: datetime, end: datetime) -> int:
        return int(
            db.query(func.count(Schedule.id))
            .filter(
                Schedule.organization_id == organization_id,
                Schedule.start_time >= to_db_time(start),
                Schedule.start_time < to_db_time(end),
            )
            .scalar()
            or 0
        )

    total_students = int(
        db.query(func.count(Profile.id))
        .filter(Profile.organization_id == organization_id, Profile.role == Role.STUDENT.value)
        .scalar()
        or 0
    )
    counts = {
        'total_students': total_students,
        'today_schedule_count': _count(day_start, day_end),
        'monthly_schedule_count': _count(month_start, month_end),
    }
    logger.debug('dashboard_counts org=%s %s', organization_id, counts)
    return counts

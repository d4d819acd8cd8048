"""SQLAlchemy implementation of the ScheduleStore."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import func
from sqlalchemy.orm import Session

from classbook import models
from classbook.core.kst import require_aware
from classbook.domain.models import (
    Schedule,
    ScheduleChanges,
    ScheduleDraft,
    SeriesChanges,
    SeriesOccurrence,
    SeriesRoot,
    Standalone,
)
from classbook.domain.errors import ScheduleNotFoundError
from classbook.request_context import organization_scope
from classbook.stores.interfaces import ScheduleStore


logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_organization_locks: dict[int, threading.RLock] = {}


def _organization_lock(organization_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _organization_locks.get(organization_id)
        if lock is None:
            lock = threading.RLock()
            _organization_locks[organization_id] = lock
        return lock


def to_db_time(value: datetime) -> datetime:
    return require_aware(value).astimezone(timezone.utc).replace(tzinfo=None)


def from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def schedule_from_row(row: models.Schedule) -> Schedule:
    if row.parent_schedule_id is not None:
        kind = SeriesOccurrence(parent_id=int(row.parent_schedule_id), is_exception=bool(row.is_exception))
    elif row.rrule:
        kind = SeriesRoot(rrule=row.rrule)
    else:
        kind = Standalone()
    return Schedule(
        id=int(row.id),
        organization_id=int(row.organization_id),
        student_id=int(row.student_id),
        program_id=int(row.program_id) if row.program_id is not None else None,
        start_time=from_db_time(row.start_time),
        end_time=from_db_time(row.end_time),
        kind=kind,
    )


def _row_from_draft(draft: ScheduleDraft) -> models.Schedule:
    row = models.Schedule(
        organization_id=draft.organization_id,
        student_id=draft.student_id,
        program_id=draft.program_id,
        start_time=to_db_time(draft.start_time),
        end_time=to_db_time(draft.end_time),
        rrule=None,
        parent_schedule_id=None,
        is_exception=False,
    )
    if isinstance(draft.kind, SeriesRoot):
        row.rrule = draft.kind.rrule
    elif isinstance(draft.kind, SeriesOccurrence):
        row.parent_schedule_id = draft.kind.parent_id
        row.is_exception = draft.kind.is_exception
    return row


class SqlAlchemyScheduleStore(ScheduleStore):
    """Relational schedule store over a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    @contextmanager
    def transaction(self, organization_id: int) -> Iterator[None]:
        with _organization_lock(int(organization_id)), organization_scope(organization_id):
            try:
                # Row lock on the organization serializes concurrent bookings
                # across processes on databases that support FOR UPDATE.
                (
                    self._db.query(models.Organization.id)
                    .filter(models.Organization.id == organization_id)
                    .with_for_update()
                    .first()
                )
                yield
                self._db.commit()
            except Exception:
                self._db.rollback()
                raise

    def _row(self, schedule_id: int) -> models.Schedule:
        row = self._db.query(models.Schedule).filter(models.Schedule.id == schedule_id).first()
        if row is None:
            raise ScheduleNotFoundError(schedule_id)
        return row

    def insert_schedule(self, draft: ScheduleDraft) -> Schedule:
        row = _row_from_draft(draft)
        self._db.add(row)
        self._db.flush()
        return schedule_from_row(row)

    def insert_schedules(self, drafts: list[ScheduleDraft]) -> list[Schedule]:
        if not drafts:
            return []
        rows = [_row_from_draft(draft) for draft in drafts]
        self._db.add_all(rows)
        self._db.flush()
        return [schedule_from_row(row) for row in rows]

    def get_schedule(self, schedule_id: int) -> Schedule | None:
        row = self._db.query(models.Schedule).filter(models.Schedule.id == schedule_id).first()
        if row is None:
            return None
        return schedule_from_row(row)

    def update_schedule(self, schedule_id: int, changes: ScheduleChanges) -> Schedule:
        row = self._row(schedule_id)
        row.student_id = changes.student_id
        row.program_id = changes.program_id
        row.start_time = to_db_time(changes.start_time)
        row.end_time = to_db_time(changes.end_time)
        if changes.is_exception is not None:
            row.is_exception = changes.is_exception
        self._db.flush()
        return schedule_from_row(row)

    def update_schedules_where(self, parent_id: int, from_time: datetime, changes: SeriesChanges) -> int:
        rows = (
            self._db.query(models.Schedule)
            .filter(
                models.Schedule.parent_schedule_id == parent_id,
                models.Schedule.start_time >= to_db_time(from_time),
            )
            .all()
        )
        for row in rows:
            new_start = row.start_time + changes.start_shift
            row.student_id = changes.student_id
            row.program_id = changes.program_id
            row.start_time = new_start
            row.end_time = new_start + changes.duration
        self._db.flush()
        return len(rows)

    def delete_schedule(self, schedule_id: int) -> None:
        row = self._row(schedule_id)
        self._db.delete(row)
        self._db.flush()

    def delete_schedules_where(self, parent_id: int, from_time: datetime) -> int:
        deleted = (
            self._db.query(models.Schedule)
            .filter(
                models.Schedule.parent_schedule_id == parent_id,
                models.Schedule.start_time >= to_db_time(from_time),
            )
            .delete(synchronize_session=False)
        )
        self._db.flush()
        return int(deleted or 0)

    def count_overlapping(
        self,
        organization_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> int:
        query = self._db.query(func.count(models.Schedule.id)).filter(
            models.Schedule.organization_id == organization_id,
            models.Schedule.start_time < to_db_time(end),
            models.Schedule.end_time > to_db_time(start),
        )
        if exclude_id is not None:
            query = query.filter(models.Schedule.id != exclude_id)
        return int(query.scalar() or 0)

    def count_overlapping_for_student(
        self,
        student_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> int:
        query = self._db.query(func.count(models.Schedule.id)).filter(
            models.Schedule.student_id == student_id,
            models.Schedule.start_time < to_db_time(end),
            models.Schedule.end_time > to_db_time(start),
        )
        if exclude_id is not None:
            query = query.filter(models.Schedule.id != exclude_id)
        return int(query.scalar() or 0)

    def promote_series_root(self, root_id: int) -> Schedule | None:
        root = self._row(root_id)
        successor = (
            self._db.query(models.Schedule)
            .filter(models.Schedule.parent_schedule_id == root_id)
            .order_by(models.Schedule.start_time.asc(), models.Schedule.id.asc())
            .first()
        )
        if successor is None:
            return None
        successor.parent_schedule_id = None
        successor.rrule = root.rrule
        successor.is_exception = False
        self._db.flush()
        (
            self._db.query(models.Schedule)
            .filter(
                models.Schedule.parent_schedule_id == root_id,
                models.Schedule.id != successor.id,
            )
            .update({models.Schedule.parent_schedule_id: successor.id}, synchronize_session=False)
        )
        self._db.flush()
        logger.info('series_root_promoted old_root_id=%s new_root_id=%s', root_id, successor.id)
        return schedule_from_row(successor)

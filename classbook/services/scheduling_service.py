"""Booking orchestration: admission checks, series creation and scoped mutation.

Every mutation runs inside ``store.transaction(organization_id)`` so the
capacity and conflict counts are read under the same lock as the writes
that follow them. Expected failures come back as ``Rejected`` values and
nothing is written in that case.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from classbook.cache import invalidate_schedule_views
from classbook.config import settings
from classbook.core import kst
from classbook.core.time_provider import TimeProvider, default_time_provider
from classbook.domain.booking import (
    ActingRole,
    BookingChanges,
    BookingRequest,
    BookingResult,
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
    SeriesChanges,
    SeriesOccurrence,
    SeriesRoot,
    Standalone,
)
from classbook.metrics import record_booking_event, timed_service
from classbook.services.capacity_service import check_capacity
from classbook.services.conflict_service import has_student_conflict
from classbook.services.profile_service import SqlAlchemyProfileReader
from classbook.services.recurrence_service import build_weekly_rrule, expand_weekly
from classbook.services.registration_window_service import (
    allowed_range,
    can_cancel,
    can_register,
    is_past_date,
)
from classbook.services.settings_service import SqlAlchemySettingsReader
from classbook.stores.interfaces import ProfileReader, ScheduleStore, SettingsReader
from classbook.stores.sqlalchemy_store import SqlAlchemyScheduleStore


logger = logging.getLogger(__name__)


class SchedulingEngine:
    def __init__(
        self,
        store: ScheduleStore,
        settings_reader: SettingsReader,
        profile_reader: ProfileReader,
        time_provider: TimeProvider = default_time_provider,
        *,
        student_conflict_check: bool | None = None,
    ) -> None:
        self.store = store
        self.settings_reader = settings_reader
        self.profile_reader = profile_reader
        self.time_provider = time_provider
        if student_conflict_check is None:
            student_conflict_check = settings.student_conflict_check
        self.student_conflict_check = bool(student_conflict_check)

    # -- creation -----------------------------------------------------------

    @timed_service('create_booking')
    def create_booking(self, request: BookingRequest, acting_role: ActingRole) -> BookingResult:
        start_time, end_time = request.interval()
        now = self.time_provider.now()

        if acting_role == ActingRole.STUDENT:
            if not can_register(request.date, now=now):
                window_start, window_end = allowed_range(now=now)
                return self._reject(
                    request.organization_id,
                    RejectionReason.OUT_OF_WINDOW,
                    {
                        'date': request.date.isoformat(),
                        'allowed_start': kst.date_key(window_start),
                        'allowed_end': kst.date_key(window_end),
                    },
                )
            if start_time < now:
                return self._reject(
                    request.organization_id,
                    RejectionReason.PAST_SCHEDULE,
                    {'date': request.date.isoformat()},
                )

        check_conflicts = acting_role == ActingRole.ADMIN or self.student_conflict_check
        duration = end_time - start_time

        with self.store.transaction(request.organization_id):
            rejection = self._admission_check(
                request.organization_id,
                request.student_id,
                start_time,
                end_time,
                check_conflicts=check_conflicts,
            )
            if rejection is not None:
                return rejection

            until_date = None
            starts = [start_time]
            if request.recurring:
                until_date = self.profile_reader.get_class_end_date(request.student_id)
                if until_date is None:
                    return self._reject(
                        request.organization_id,
                        RejectionReason.MISSING_ENROLLMENT_END_DATE,
                        {'student_id': request.student_id},
                    )
                starts = expand_weekly(start_time, until_date)

            # The first start was admitted above.
            for occurrence_start in starts[1:]:
                rejection = self._admission_check(
                    request.organization_id,
                    request.student_id,
                    occurrence_start,
                    occurrence_start + duration,
                    check_conflicts=check_conflicts,
                )
                if rejection is not None:
                    return rejection

            if until_date is None:
                root = self.store.insert_schedule(
                    ScheduleDraft(
                        organization_id=request.organization_id,
                        student_id=request.student_id,
                        program_id=request.program_id,
                        start_time=start_time,
                        end_time=end_time,
                        kind=Standalone(),
                    )
                )
                occurrences = []
            else:
                root = self.store.insert_schedule(
                    ScheduleDraft(
                        organization_id=request.organization_id,
                        student_id=request.student_id,
                        program_id=request.program_id,
                        start_time=start_time,
                        end_time=end_time,
                        kind=SeriesRoot(rrule=build_weekly_rrule(until_date)),
                    )
                )
                occurrences = self.store.insert_schedules(
                    [
                        ScheduleDraft(
                            organization_id=request.organization_id,
                            student_id=request.student_id,
                            program_id=request.program_id,
                            start_time=occurrence_start,
                            end_time=occurrence_start + duration,
                            kind=SeriesOccurrence(parent_id=root.id),
                        )
                        for occurrence_start in starts[1:]
                    ]
                )

        invalidate_schedule_views()
        record_booking_event('booking_created')
        logger.info(
            'booking_created schedule_id=%s org=%s student=%s role=%s occurrences=%s',
            root.id,
            request.organization_id,
            request.student_id,
            acting_role.value,
            len(occurrences),
        )
        return Created(schedule_id=root.id, occurrence_count=len(occurrences))

    def _admission_check(
        self,
        organization_id: int,
        student_id: int,
        start_time: datetime,
        end_time: datetime,
        *,
        check_conflicts: bool,
        exclude_schedule_id: int | None = None,
    ) -> Rejected | None:
        capacity = check_capacity(
            self.store,
            self.settings_reader,
            organization_id,
            start_time,
            end_time,
            exclude_schedule_id,
        )
        if not capacity.allowed:
            return self._reject(
                organization_id,
                RejectionReason.CAPACITY_EXCEEDED,
                {
                    'current': capacity.current_count,
                    'max': capacity.max_count,
                    'date': kst.date_key(start_time),
                },
            )
        if check_conflicts and has_student_conflict(self.store, student_id, start_time, end_time, exclude_schedule_id):
            return self._reject(
                organization_id,
                RejectionReason.STUDENT_CONFLICT,
                {'student_id': student_id, 'date': kst.date_key(start_time)},
            )
        return None

    def _reject(self, organization_id: int, reason: RejectionReason, detail: dict) -> Rejected:
        record_booking_event(f'booking_rejected:{reason.value}')
        logger.info(
            'booking_rejected reason=%s org=%s %s',
            reason.value,
            organization_id,
            ' '.join(f'{key}={value}' for key, value in detail.items()),
        )
        return Rejected(reason=reason, detail=detail)

    # -- mutation -----------------------------------------------------------

    def _load(self, schedule_id: int) -> Schedule:
        schedule = self.store.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    @timed_service('update_booking')
    def update_booking(
        self,
        schedule_id: int,
        changes: BookingChanges,
        scope: MutationScope = MutationScope.SINGLE,
        *,
        organization_id: int | None = None,
    ) -> Updated | Rejected:
        existing = self._load(schedule_id)
        self._require_organization(existing, organization_id)
        now = self.time_provider.now()
        new_start, new_end = changes.interval()

        with self.store.transaction(existing.organization_id):
            existing = self._load(schedule_id)
            if is_past_date(existing.start_time, now=now):
                return self._reject(
                    existing.organization_id,
                    RejectionReason.PAST_SCHEDULE,
                    {'schedule_id': schedule_id},
                )
            rejection = self._admission_check(
                existing.organization_id,
                changes.student_id,
                new_start,
                new_end,
                check_conflicts=False,
                exclude_schedule_id=schedule_id,
            )
            if rejection is not None:
                return rejection

            series_id = existing.series_id
            if scope == MutationScope.FUTURE and series_id is not None:
                affected = self.store.update_schedules_where(
                    series_id,
                    now,
                    SeriesChanges(
                        student_id=changes.student_id,
                        program_id=changes.program_id,
                        start_shift=new_start - existing.start_time,
                        duration=new_end - new_start,
                    ),
                )
                # The record itself is only part of that set when it starts
                # after now (occurrences) and never when it is the root.
                already_shifted = isinstance(existing.kind, SeriesOccurrence) and existing.start_time >= now
                self.store.update_schedule(
                    schedule_id,
                    ScheduleChanges(
                        student_id=changes.student_id,
                        program_id=changes.program_id,
                        start_time=new_start,
                        end_time=new_end,
                    ),
                )
                if not already_shifted:
                    affected += 1
            else:
                self.store.update_schedule(
                    schedule_id,
                    ScheduleChanges(
                        student_id=changes.student_id,
                        program_id=changes.program_id,
                        start_time=new_start,
                        end_time=new_end,
                        is_exception=True if isinstance(existing.kind, SeriesOccurrence) else None,
                    ),
                )
                affected = 1

        invalidate_schedule_views()
        record_booking_event('booking_updated')
        logger.info(
            'booking_updated schedule_id=%s scope=%s affected=%s',
            schedule_id,
            scope.value,
            affected,
        )
        return Updated(schedule_id=schedule_id, affected_count=affected)

    @timed_service('delete_booking')
    def delete_booking(
        self,
        schedule_id: int,
        scope: MutationScope = MutationScope.SINGLE,
        *,
        organization_id: int | None = None,
    ) -> Deleted | Rejected:
        existing = self._load(schedule_id)
        self._require_organization(existing, organization_id)
        now = self.time_provider.now()

        with self.store.transaction(existing.organization_id):
            existing = self._load(schedule_id)
            if is_past_date(existing.start_time, now=now):
                return self._reject(
                    existing.organization_id,
                    RejectionReason.PAST_SCHEDULE,
                    {'schedule_id': schedule_id},
                )
            series_id = existing.series_id
            if scope == MutationScope.FUTURE and series_id is not None:
                deleted = self._delete_future(existing, series_id, now)
            else:
                deleted = self._delete_single(existing)

        invalidate_schedule_views()
        record_booking_event('booking_deleted')
        logger.info('booking_deleted schedule_id=%s scope=%s deleted=%s', schedule_id, scope.value, deleted)
        return Deleted(schedule_id=schedule_id, deleted_count=deleted)

    def _delete_single(self, existing: Schedule) -> int:
        if isinstance(existing.kind, SeriesRoot):
            self.store.promote_series_root(existing.id)
        self.store.delete_schedule(existing.id)
        return 1

    def _delete_future(self, existing: Schedule, series_id: int, now: datetime) -> int:
        deleted = self.store.delete_schedules_where(series_id, now)
        if isinstance(existing.kind, SeriesRoot):
            # Occurrences moved before now stay; one of them takes over the series.
            self.store.promote_series_root(existing.id)
            self.store.delete_schedule(existing.id)
            deleted += 1
        elif existing.start_time < now:
            self.store.delete_schedule(existing.id)
            deleted += 1
        return deleted

    @timed_service('cancel_booking')
    def cancel_booking(self, schedule_id: int, student_id: int) -> Deleted | Rejected:
        """Self-service cancellation of a single booking owned by ``student_id``."""
        existing = self._load(schedule_id)
        if existing.student_id != student_id:
            logger.warning('booking_cancel_forbidden schedule_id=%s student=%s', schedule_id, student_id)
            raise BookingPermissionError('Schedule belongs to another student')
        now = self.time_provider.now()

        with self.store.transaction(existing.organization_id):
            existing = self._load(schedule_id)
            if not can_cancel(existing.start_time, now=now):
                return self._reject(
                    existing.organization_id,
                    RejectionReason.PAST_SCHEDULE,
                    {
                        'schedule_id': schedule_id,
                        'same_day': kst.kst_date(existing.start_time) == kst.kst_date(now),
                    },
                )
            self._delete_single(existing)

        invalidate_schedule_views()
        record_booking_event('booking_cancelled')
        logger.info('booking_cancelled schedule_id=%s student=%s', schedule_id, student_id)
        return Deleted(schedule_id=schedule_id, deleted_count=1)

    @staticmethod
    def _require_organization(schedule: Schedule, organization_id: int | None) -> None:
        if organization_id is not None and schedule.organization_id != organization_id:
            raise ScheduleNotFoundError(schedule.id)


def build_scheduling_engine(db: Session, time_provider: TimeProvider = default_time_provider) -> SchedulingEngine:
    return SchedulingEngine(
        store=SqlAlchemyScheduleStore(db),
        settings_reader=SqlAlchemySettingsReader(db),
        profile_reader=SqlAlchemyProfileReader(db),
        time_provider=time_provider,
    )

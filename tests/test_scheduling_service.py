import tempfile
import threading
import unittest
from datetime import date, datetime, time
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from classbook.core import kst
from classbook.core.time_provider import FixedTimeProvider
from classbook.db import Base
from classbook.domain import (
    ActingRole,
    BookingChanges,
    BookingPermissionError,
    BookingRequest,
    Created,
    Deleted,
    MutationScope,
    Rejected,
    RejectionReason,
    ScheduleDraft,
    ScheduleNotFoundError,
    Standalone,
    Updated,
)
from classbook.models import Organization, OrganizationSetting, Profile, Schedule
from classbook.services.profile_service import SqlAlchemyProfileReader
from classbook.services.scheduling_service import SchedulingEngine
from classbook.services.settings_service import SqlAlchemySettingsReader, update_setting
from classbook.stores.sqlalchemy_store import SqlAlchemyScheduleStore, from_db_time


class SchedulingEngineTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_scheduling_service.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(Schedule).filter(Schedule.parent_schedule_id.is_not(None)).delete()
            for table in (Schedule, OrganizationSetting, Profile, Organization):
                db.query(table).delete()
            db.add_all(
                [
                    Organization(id=1, name='Studio One', slug='studio-one'),
                    Organization(id=2, name='Studio Two', slug='studio-two'),
                ]
            )
            db.add_all(
                [
                    Profile(id=11, organization_id=1, name='Minji', class_end_date=date(2025, 3, 31)),
                    Profile(id=12, organization_id=1, name='Jisoo'),
                    Profile(id=13, organization_id=1, name='Hyun', class_end_date=date(2025, 3, 24)),
                    Profile(id=21, organization_id=2, name='Other'),
                ]
            )
            db.commit()
        finally:
            db.close()
        self.db = self._session_factory()
        # Wednesday 2025-03-05 09:00 KST.
        self.now = kst.from_components(2025, 2, 5, 9, 0)

    def tearDown(self):
        self.db.close()

    def _engine_at(self, now: datetime, db=None, **kwargs) -> SchedulingEngine:
        session = db or self.db
        return SchedulingEngine(
            store=SqlAlchemyScheduleStore(session),
            settings_reader=SqlAlchemySettingsReader(session),
            profile_reader=SqlAlchemyProfileReader(session),
            time_provider=FixedTimeProvider(now),
            **kwargs,
        )

    def _request(self, student_id, day, hour, *, slots=1, recurring=False, organization_id=1):
        return BookingRequest(
            organization_id=organization_id,
            student_id=student_id,
            date=day,
            start_time=time(hour, 0),
            duration_slots=slots,
            recurring=recurring,
        )

    def _rows(self, student_id=None):
        db = self._session_factory()
        try:
            query = db.query(Schedule)
            if student_id is not None:
                query = query.filter(Schedule.student_id == student_id)
            rows = query.order_by(Schedule.start_time.asc(), Schedule.id.asc()).all()
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()

    def _insert_standalone(self, organization_id, student_id, start, end):
        db = self._session_factory()
        try:
            store = SqlAlchemyScheduleStore(db)
            with store.transaction(organization_id):
                return store.insert_schedule(
                    ScheduleDraft(
                        organization_id=organization_id,
                        student_id=student_id,
                        program_id=None,
                        start_time=start,
                        end_time=end,
                        kind=Standalone(),
                    )
                )
        finally:
            db.close()

    def _create_series(self, student_id, day, hour, *, now=None):
        engine = self._engine_at(now or self.now)
        result = engine.create_booking(self._request(student_id, day, hour, recurring=True), ActingRole.ADMIN)
        self.assertIsInstance(result, Created)
        return result

    def test_capacity_end_to_end_with_half_open_boundary(self):
        update_setting(self.db, 1, 'max_concurrent_students', 2)
        engine = self._engine_at(self.now)
        day = date(2025, 3, 10)

        self.assertIsInstance(engine.create_booking(self._request(11, day, 10), ActingRole.ADMIN), Created)
        self.assertIsInstance(engine.create_booking(self._request(12, day, 10), ActingRole.ADMIN), Created)

        overlapping = engine.create_booking(self._request(13, day, 11), ActingRole.ADMIN)
        self.assertIsInstance(overlapping, Rejected)
        self.assertEqual(overlapping.reason, RejectionReason.CAPACITY_EXCEEDED)
        self.assertEqual(overlapping.detail['current'], 2)
        self.assertEqual(overlapping.detail['max'], 2)
        self.assertIn('(2)', overlapping.message)

        adjacent = engine.create_booking(self._request(13, day, 13), ActingRole.ADMIN)
        self.assertIsInstance(adjacent, Created)
        self.assertEqual(len(self._rows()), 3)

    def test_created_booking_has_slot_duration(self):
        engine = self._engine_at(self.now)
        result = engine.create_booking(self._request(11, date(2025, 3, 10), 10, slots=3), ActingRole.ADMIN)
        self.assertIsInstance(result, Created)
        self.assertEqual(result.occurrence_count, 0)
        row = self._rows(11)[0]
        self.assertEqual((row.end_time - row.start_time).total_seconds(), 9 * 3600)
        self.assertIsNone(row.rrule)
        self.assertIsNone(row.parent_schedule_id)

    def test_admin_path_rejects_student_conflict(self):
        engine = self._engine_at(self.now)
        day = date(2025, 3, 10)
        engine.create_booking(self._request(11, day, 10), ActingRole.ADMIN)
        result = engine.create_booking(self._request(11, day, 12), ActingRole.ADMIN)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.STUDENT_CONFLICT)

    def test_conflict_check_is_not_scoped_to_organization(self):
        self._insert_standalone(2, 11, kst.from_components(2025, 2, 10, 10), kst.from_components(2025, 2, 10, 13))
        result = self._engine_at(self.now).create_booking(self._request(11, date(2025, 3, 10), 11), ActingRole.ADMIN)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.STUDENT_CONFLICT)

    def test_student_path_out_of_window(self):
        result = self._engine_at(self.now).create_booking(self._request(11, date(2025, 4, 2), 10), ActingRole.STUDENT)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.OUT_OF_WINDOW)
        self.assertEqual(result.detail['allowed_start'], '2025-03-01')
        self.assertEqual(result.detail['allowed_end'], '2025-03-31')
        self.assertIn('2025-03-31', result.message)

    def test_admin_path_bypasses_window(self):
        result = self._engine_at(self.now).create_booking(self._request(11, date(2025, 5, 2), 10), ActingRole.ADMIN)
        self.assertIsInstance(result, Created)

    def test_student_path_rejects_past_start(self):
        result = self._engine_at(self.now).create_booking(self._request(11, date(2025, 3, 4), 10), ActingRole.STUDENT)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.PAST_SCHEDULE)
        self.assertEqual(self._rows(), [])

    def test_student_conflict_check_can_be_disabled(self):
        day = date(2025, 3, 10)
        strict = self._engine_at(self.now)
        self.assertIsInstance(strict.create_booking(self._request(11, day, 10), ActingRole.STUDENT), Created)
        rejected = strict.create_booking(self._request(11, day, 11), ActingRole.STUDENT)
        self.assertEqual(rejected.reason, RejectionReason.STUDENT_CONFLICT)

        lenient = self._engine_at(self.now, student_conflict_check=False)
        self.assertIsInstance(lenient.create_booking(self._request(11, day, 11), ActingRole.STUDENT), Created)

    def test_recurring_creates_root_and_occurrences(self):
        result = self._create_series(11, date(2025, 3, 10), 10)
        self.assertEqual(result.occurrence_count, 3)

        rows = self._rows(11)
        self.assertEqual([kst.date_key(from_db_time(row.start_time)) for row in rows],
                         ['2025-03-10', '2025-03-17', '2025-03-24', '2025-03-31'])
        root = rows[0]
        self.assertEqual(root.id, result.schedule_id)
        self.assertEqual(root.rrule, 'FREQ=WEEKLY;INTERVAL=1;UNTIL=20250331')
        self.assertIsNone(root.parent_schedule_id)
        for row in rows[1:]:
            self.assertEqual(row.parent_schedule_id, root.id)
            self.assertIsNone(row.rrule)
            self.assertFalse(row.is_exception)

    def test_recurring_requires_class_end_date(self):
        result = self._engine_at(self.now).create_booking(
            self._request(12, date(2025, 3, 10), 10, recurring=True),
            ActingRole.ADMIN,
        )
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.MISSING_ENROLLMENT_END_DATE)
        self.assertEqual(self._rows(), [])

    def test_full_slot_reported_before_missing_class_end_date(self):
        update_setting(self.db, 1, 'max_concurrent_students', 1)
        self._insert_standalone(1, 11, kst.from_components(2025, 2, 10, 10), kst.from_components(2025, 2, 10, 13))

        result = self._engine_at(self.now).create_booking(
            self._request(12, date(2025, 3, 10), 10, recurring=True),
            ActingRole.ADMIN,
        )
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.CAPACITY_EXCEEDED)
        self.assertEqual(result.detail['current'], 1)
        self.assertEqual(result.detail['max'], 1)
        self.assertEqual(self._rows(12), [])

    def test_conflict_reported_before_missing_class_end_date(self):
        self._insert_standalone(1, 12, kst.from_components(2025, 2, 10, 10), kst.from_components(2025, 2, 10, 13))
        result = self._engine_at(self.now).create_booking(
            self._request(12, date(2025, 3, 10), 11, recurring=True),
            ActingRole.ADMIN,
        )
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.STUDENT_CONFLICT)

    def test_recurring_rejected_when_any_occurrence_is_full(self):
        update_setting(self.db, 1, 'max_concurrent_students', 1)
        self._insert_standalone(1, 13, kst.from_components(2025, 2, 24, 11), kst.from_components(2025, 2, 24, 14))

        result = self._engine_at(self.now).create_booking(
            self._request(11, date(2025, 3, 10), 10, recurring=True),
            ActingRole.ADMIN,
        )
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.CAPACITY_EXCEEDED)
        self.assertEqual(result.detail['date'], '2025-03-24')
        self.assertEqual(self._rows(11), [])

    def test_delete_future_leaves_earlier_series_members(self):
        self._create_series(13, date(2025, 3, 3), 10, now=kst.from_components(2025, 2, 1, 9))
        rows = self._rows(13)
        self.assertEqual(len(rows), 4)
        root, o1, o2, o3 = rows

        # Between O1 (03-10) and O2 (03-17).
        engine = self._engine_at(kst.from_components(2025, 2, 12, 9))
        result = engine.delete_booking(o2.id, MutationScope.FUTURE)
        self.assertIsInstance(result, Deleted)
        self.assertEqual(result.deleted_count, 2)
        self.assertEqual([row.id for row in self._rows(13)], [root.id, o1.id])

    def test_past_schedule_cannot_be_changed_or_deleted(self):
        booked = self._insert_standalone(
            1, 11, kst.from_components(2025, 2, 4, 10), kst.from_components(2025, 2, 4, 13)
        )
        engine = self._engine_at(self.now)
        changes = BookingChanges(student_id=11, date=date(2025, 3, 12), start_time=time(10, 0))
        for scope in (MutationScope.SINGLE, MutationScope.FUTURE):
            updated = engine.update_booking(booked.id, changes, scope)
            self.assertIsInstance(updated, Rejected)
            self.assertEqual(updated.reason, RejectionReason.PAST_SCHEDULE)
            deleted = engine.delete_booking(booked.id, scope)
            self.assertIsInstance(deleted, Rejected)
            self.assertEqual(deleted.reason, RejectionReason.PAST_SCHEDULE)
        self.assertEqual(len(self._rows(11)), 1)

    def test_same_day_schedule_can_still_be_edited_by_admin(self):
        booked = self._insert_standalone(
            1, 11, kst.from_components(2025, 2, 5, 8), kst.from_components(2025, 2, 5, 11)
        )
        result = self._engine_at(self.now).delete_booking(booked.id)
        self.assertIsInstance(result, Deleted)

    def test_update_single_marks_occurrence_as_exception(self):
        self._create_series(11, date(2025, 3, 10), 10)
        occurrence = self._rows(11)[1]
        changes = BookingChanges(student_id=11, date=date(2025, 3, 18), start_time=time(14, 0), duration_slots=2)

        result = self._engine_at(self.now).update_booking(occurrence.id, changes, MutationScope.SINGLE)
        self.assertIsInstance(result, Updated)
        self.assertEqual(result.affected_count, 1)

        moved = [row for row in self._rows(11) if row.id == occurrence.id][0]
        self.assertTrue(moved.is_exception)
        self.assertEqual(moved.parent_schedule_id, occurrence.parent_schedule_id)
        self.assertEqual(kst.date_key(from_db_time(moved.start_time)), '2025-03-18')
        self.assertEqual((moved.end_time - moved.start_time).total_seconds(), 6 * 3600)

    def test_update_excludes_itself_from_capacity(self):
        update_setting(self.db, 1, 'max_concurrent_students', 1)
        engine = self._engine_at(self.now)
        created = engine.create_booking(self._request(11, date(2025, 3, 10), 10), ActingRole.ADMIN)
        changes = BookingChanges(student_id=11, date=date(2025, 3, 10), start_time=time(11, 0))
        self.assertIsInstance(engine.update_booking(created.schedule_id, changes), Updated)

    def test_update_does_not_check_student_conflicts(self):
        engine = self._engine_at(self.now)
        day = date(2025, 3, 10)
        first = engine.create_booking(self._request(11, day, 10), ActingRole.ADMIN)
        self.assertIsInstance(engine.create_booking(self._request(11, day, 14), ActingRole.ADMIN), Created)

        changes = BookingChanges(student_id=11, date=day, start_time=time(12, 0))
        result = engine.update_booking(first.schedule_id, changes)
        self.assertIsInstance(result, Updated)
        moved = [row for row in self._rows(11) if row.id == first.schedule_id][0]
        self.assertEqual(kst.to_components(from_db_time(moved.start_time)).hour, 12)

    def test_update_rejected_when_target_slot_is_full(self):
        update_setting(self.db, 1, 'max_concurrent_students', 1)
        engine = self._engine_at(self.now)
        created = engine.create_booking(self._request(11, date(2025, 3, 10), 10), ActingRole.ADMIN)
        engine.create_booking(self._request(12, date(2025, 3, 10), 14), ActingRole.ADMIN)

        changes = BookingChanges(student_id=11, date=date(2025, 3, 10), start_time=time(15, 0))
        result = engine.update_booking(created.schedule_id, changes)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, RejectionReason.CAPACITY_EXCEEDED)
        self.assertEqual(result.detail['current'], 1)

    def test_update_future_shifts_remaining_occurrences(self):
        self._create_series(11, date(2025, 3, 10), 10)
        root, o1, o2, o3 = self._rows(11)
        changes = BookingChanges(student_id=11, date=date(2025, 3, 17), start_time=time(14, 0), duration_slots=2)

        result = self._engine_at(self.now).update_booking(o1.id, changes, MutationScope.FUTURE)
        self.assertIsInstance(result, Updated)
        self.assertEqual(result.affected_count, 3)

        rows = {row.id: row for row in self._rows(11)}
        self.assertEqual(kst.to_components(from_db_time(rows[root.id].start_time)).hour, 10)
        for row_id, day_key in ((o1.id, '2025-03-17'), (o2.id, '2025-03-24'), (o3.id, '2025-03-31')):
            start = from_db_time(rows[row_id].start_time)
            self.assertEqual(kst.date_key(start), day_key)
            self.assertEqual(kst.to_components(start).hour, 14)
            self.assertEqual((rows[row_id].end_time - rows[row_id].start_time).total_seconds(), 6 * 3600)

    def test_update_future_on_root_covers_whole_series(self):
        created = self._create_series(11, date(2025, 3, 10), 10)
        changes = BookingChanges(student_id=11, date=date(2025, 3, 10), start_time=time(13, 0))
        result = self._engine_at(self.now).update_booking(created.schedule_id, changes, MutationScope.FUTURE)
        self.assertEqual(result.affected_count, 4)
        for row in self._rows(11):
            self.assertEqual(kst.to_components(from_db_time(row.start_time)).hour, 13)

    def test_delete_single_root_promotes_next_occurrence(self):
        created = self._create_series(11, date(2025, 3, 10), 10)
        result = self._engine_at(self.now).delete_booking(created.schedule_id, MutationScope.SINGLE)
        self.assertEqual(result.deleted_count, 1)

        rows = self._rows(11)
        self.assertEqual(len(rows), 3)
        new_root = rows[0]
        self.assertIsNone(new_root.parent_schedule_id)
        self.assertEqual(new_root.rrule, 'FREQ=WEEKLY;INTERVAL=1;UNTIL=20250331')
        for row in rows[1:]:
            self.assertEqual(row.parent_schedule_id, new_root.id)

    def test_delete_future_on_root_removes_series(self):
        created = self._create_series(11, date(2025, 3, 10), 10)
        result = self._engine_at(self.now).delete_booking(created.schedule_id, MutationScope.FUTURE)
        self.assertEqual(result.deleted_count, 4)
        self.assertEqual(self._rows(11), [])

    def test_delete_future_on_standalone_acts_as_single(self):
        engine = self._engine_at(self.now)
        first = engine.create_booking(self._request(11, date(2025, 3, 10), 10), ActingRole.ADMIN)
        engine.create_booking(self._request(11, date(2025, 3, 17), 10), ActingRole.ADMIN)
        result = engine.delete_booking(first.schedule_id, MutationScope.FUTURE)
        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(len(self._rows(11)), 1)

    def test_cancel_booking_rules(self):
        engine = self._engine_at(self.now)
        tomorrow = engine.create_booking(self._request(11, date(2025, 3, 6), 10), ActingRole.STUDENT)
        today = self._insert_standalone(1, 11, kst.from_components(2025, 2, 5, 15), kst.from_components(2025, 2, 5, 18))

        with self.assertRaises(BookingPermissionError):
            engine.cancel_booking(tomorrow.schedule_id, 12)

        same_day = engine.cancel_booking(today.id, 11)
        self.assertIsInstance(same_day, Rejected)
        self.assertEqual(same_day.reason, RejectionReason.PAST_SCHEDULE)
        self.assertTrue(same_day.detail['same_day'])
        self.assertIn('Same-day', same_day.message)

        cancelled = engine.cancel_booking(tomorrow.schedule_id, 11)
        self.assertIsInstance(cancelled, Deleted)
        self.assertEqual([row.id for row in self._rows(11)], [today.id])

    def test_unknown_schedule_raises(self):
        engine = self._engine_at(self.now)
        with self.assertRaises(ScheduleNotFoundError):
            engine.delete_booking(9999)
        with self.assertRaises(ScheduleNotFoundError):
            engine.cancel_booking(9999, 11)

    def test_other_organization_cannot_touch_booking(self):
        engine = self._engine_at(self.now)
        created = engine.create_booking(self._request(11, date(2025, 3, 10), 10), ActingRole.ADMIN)
        with self.assertRaises(ScheduleNotFoundError):
            engine.delete_booking(created.schedule_id, organization_id=2)

    def test_outcomes_are_counted(self):
        with patch('classbook.services.scheduling_service.record_booking_event') as recorder:
            self._engine_at(self.now).create_booking(self._request(11, date(2025, 4, 2), 10), ActingRole.STUDENT)
        recorder.assert_called_once_with('booking_rejected:out_of_window')

    def test_concurrent_requests_cannot_overfill_a_slot(self):
        update_setting(self.db, 1, 'max_concurrent_students', 1)
        barrier = threading.Barrier(2)
        results = []
        errors = []
        lock = threading.Lock()

        def worker(student_id):
            db = self._session_factory()
            try:
                engine = self._engine_at(self.now, db=db)
                barrier.wait(timeout=5)
                outcome = engine.create_booking(self._request(student_id, date(2025, 3, 10), 10), ActingRole.ADMIN)
                with lock:
                    results.append(outcome)
            except Exception as exc:  # pragma: no cover - test diagnostic path
                errors.append(exc)
            finally:
                db.close()

        threads = [threading.Thread(target=worker, args=(student_id,)) for student_id in (11, 12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(errors, [])
        self.assertEqual(sum(isinstance(result, Created) for result in results), 1)
        self.assertEqual(sum(isinstance(result, Rejected) for result in results), 1)
        self.assertEqual(len(self._rows()), 1)


if __name__ == '__main__':
    unittest.main()

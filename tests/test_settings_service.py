import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from classbook.db import Base
from classbook.models import Organization, OrganizationSetting, Profile
from classbook.services.bootstrap_service import run_bootstrap
from classbook.services.profile_service import SqlAlchemyProfileReader, get_class_dates
from classbook.services.settings_service import (
    DEFAULT_SETTINGS,
    SqlAlchemySettingsReader,
    get_all_settings,
    get_setting,
    initialize_default_settings,
    update_setting,
)


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_settings_service.db'
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
            for table in (OrganizationSetting, Profile, Organization):
                db.query(table).delete()
            db.add_all(
                [
                    Organization(id=1, name='Studio One', slug='studio-one'),
                    Organization(id=2, name='Studio Two', slug='studio-two'),
                ]
            )
            db.add_all(
                [
                    Profile(id=11, organization_id=1, name='Minji', class_start_date=date(2025, 3, 1), class_end_date=date(2025, 6, 30)),
                    Profile(id=12, organization_id=1, name='Jisoo'),
                ]
            )
            db.commit()
        finally:
            db.close()
        self.db = self._session_factory()

    def tearDown(self):
        self.db.close()

    def test_defaults_without_rows(self):
        self.assertEqual(get_all_settings(self.db, 1), DEFAULT_SETTINGS)
        self.assertEqual(get_setting(self.db, 1, 'max_concurrent_students'), 5)
        self.assertEqual(get_setting(self.db, 1, 'time_slot_interval_minutes'), 30)
        self.assertIs(get_setting(self.db, 1, 'notifications_enabled'), False)

    def test_update_is_upsert_and_scoped_per_organization(self):
        update_setting(self.db, 1, 'max_concurrent_students', 3)
        update_setting(self.db, 1, 'max_concurrent_students', 4)
        rows = self.db.query(OrganizationSetting).filter(OrganizationSetting.organization_id == 1).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(json.loads(rows[0].setting_value), {'value': 4})
        self.assertEqual(SqlAlchemySettingsReader(self.db).get_max_concurrent_students(1), 4)
        self.assertEqual(SqlAlchemySettingsReader(self.db).get_max_concurrent_students(2), 5)

    def test_invalid_values_rejected(self):
        with self.assertRaises(ValueError):
            update_setting(self.db, 1, 'max_concurrent_students', 0)
        with self.assertRaises(ValueError):
            update_setting(self.db, 1, 'time_slot_interval_minutes', 90)
        with self.assertRaises(ValueError):
            update_setting(self.db, 1, 'unknown_key', 1)
        with self.assertRaises(ValueError):
            update_setting(self.db, 1, 'schedule_duration_hours', 3)
        self.assertNotIn('schedule_duration_hours', get_all_settings(self.db, 1))

    def test_corrupt_value_falls_back_to_default(self):
        self.db.add(OrganizationSetting(organization_id=1, setting_key='max_concurrent_students', setting_value='not-json'))
        self.db.commit()
        self.assertEqual(get_setting(self.db, 1, 'max_concurrent_students'), 5)

    def test_initialize_defaults_is_idempotent(self):
        update_setting(self.db, 1, 'max_concurrent_students', 2)
        self.assertEqual(initialize_default_settings(self.db, 1), len(DEFAULT_SETTINGS) - 1)
        self.assertEqual(initialize_default_settings(self.db, 1), 0)
        self.assertEqual(get_setting(self.db, 1, 'max_concurrent_students'), 2)

    def test_bootstrap_covers_every_organization(self):
        result = run_bootstrap(self.db)
        self.assertEqual(result['organizations'], 2)
        self.assertEqual(result['settings_created'], 2 * len(DEFAULT_SETTINGS))
        self.assertFalse(run_bootstrap(self.db)['ran'])

    def test_profile_reader(self):
        reader = SqlAlchemyProfileReader(self.db)
        self.assertEqual(reader.get_class_end_date(11), date(2025, 6, 30))
        self.assertIsNone(reader.get_class_end_date(12))
        self.assertIsNone(reader.get_class_end_date(999))
        self.assertEqual(get_class_dates(self.db, 11)['class_start_date'], date(2025, 3, 1))


if __name__ == '__main__':
    unittest.main()

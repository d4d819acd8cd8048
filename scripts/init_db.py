from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from classbook.core.time_provider import default_time_provider
from classbook.db import Base, engine, session_scope
from classbook.models import Organization, Profile, Program, Role
from classbook.services.settings_service import initialize_default_settings


DEMO_STUDENTS = (
    ('Minji', '01000000001', '#e8590c'),
    ('Jisoo', '01000000002', '#2f9e44'),
    ('Hyun', '01000000003', '#1971c2'),
)


def seed_demo_organization() -> bool:
    with session_scope() as db:
        if db.query(Organization).first():
            return False
        organization = Organization(name='Demo Studio', slug='demo-studio')
        db.add(organization)
        db.flush()

        today = default_time_provider.today()
        db.add(Profile(organization_id=organization.id, name='Admin', role=Role.ADMIN.value))
        db.add_all(
            [
                Profile(
                    organization_id=organization.id,
                    name=name,
                    role=Role.STUDENT.value,
                    phone=phone,
                    color=color,
                    class_start_date=today,
                    class_end_date=today + timedelta(weeks=8),
                )
                for name, phone, color in DEMO_STUDENTS
            ]
        )
        db.add(Program(organization_id=organization.id, title='Portfolio Drawing'))
        db.commit()
        initialize_default_settings(db, organization.id)
        return True


if __name__ == '__main__':
    Base.metadata.create_all(bind=engine)
    if seed_demo_organization():
        print('DB initialized with sample data.')
    else:
        print('DB already has an organization; nothing seeded.')

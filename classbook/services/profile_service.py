from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from classbook.models import Profile
from classbook.stores.interfaces import ProfileReader


def get_class_dates(db: Session, student_id: int) -> dict[str, date | None]:
    row = db.query(Profile).filter(Profile.id == student_id).first()
    if not row:
        return {'class_start_date': None, 'class_end_date': None}
    return {
        'class_start_date': row.class_start_date,
        'class_end_date': row.class_end_date,
    }


def get_class_end_date(db: Session, student_id: int) -> date | None:
    return get_class_dates(db, student_id)['class_end_date']


class SqlAlchemyProfileReader(ProfileReader):
    def __init__(self, db: Session) -> None:
        self._db = db

    def get_class_end_date(self, student_id: int) -> date | None:
        return get_class_end_date(self._db, student_id)

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from classbook.config import settings
from classbook.models import OrganizationSetting
from classbook.stores.interfaces import SettingsReader


logger = logging.getLogger(__name__)

MAX_CONCURRENT_STUDENTS = 'max_concurrent_students'
TIME_SLOT_INTERVAL_MINUTES = 'time_slot_interval_minutes'
NOTIFICATIONS_ENABLED = 'notifications_enabled'

DEFAULT_SETTINGS: dict[str, Any] = {
    MAX_CONCURRENT_STUDENTS: settings.default_max_concurrent_students,
    TIME_SLOT_INTERVAL_MINUTES: settings.default_time_slot_interval_minutes,
    NOTIFICATIONS_ENABLED: False,
}


def _decode(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning('organization_setting_invalid_json raw=%s', raw)
        return None
    if isinstance(payload, dict):
        return payload.get('value')
    return None


def _validate(key: str, value: Any) -> Any:
    if key not in DEFAULT_SETTINGS:
        raise ValueError(f'Unknown setting: {key}')
    if key == NOTIFICATIONS_ENABLED:
        return bool(value)
    number = int(value)
    if key == MAX_CONCURRENT_STUDENTS and number < 1:
        raise ValueError('max_concurrent_students must be at least 1')
    if key == TIME_SLOT_INTERVAL_MINUTES and not 5 <= number <= 60:
        raise ValueError('time_slot_interval_minutes must be between 5 and 60')
    return number


def get_setting(db: Session, organization_id: int, key: str) -> Any:
    row = (
        db.query(OrganizationSetting)
        .filter(
            OrganizationSetting.organization_id == organization_id,
            OrganizationSetting.setting_key == key,
        )
        .first()
    )
    value = _decode(row.setting_value) if row else None
    if value is None:
        return DEFAULT_SETTINGS.get(key)
    return value


def get_all_settings(db: Session, organization_id: int) -> dict[str, Any]:
    effective = dict(DEFAULT_SETTINGS)
    rows = db.query(OrganizationSetting).filter(OrganizationSetting.organization_id == organization_id).all()
    for row in rows:
        value = _decode(row.setting_value)
        if row.setting_key in effective and value is not None:
            effective[row.setting_key] = value
    return effective


def update_setting(db: Session, organization_id: int, key: str, value: Any) -> OrganizationSetting:
    clean_value = _validate(key, value)
    row = (
        db.query(OrganizationSetting)
        .filter(
            OrganizationSetting.organization_id == organization_id,
            OrganizationSetting.setting_key == key,
        )
        .first()
    )
    if not row:
        row = OrganizationSetting(organization_id=organization_id, setting_key=key)
        db.add(row)
    row.setting_value = json.dumps({'value': clean_value})
    db.commit()
    db.refresh(row)
    logger.info('organization_setting_updated org=%s key=%s value=%s', organization_id, key, clean_value)
    return row


def initialize_default_settings(db: Session, organization_id: int) -> int:
    existing = {
        key
        for (key,) in db.query(OrganizationSetting.setting_key)
        .filter(OrganizationSetting.organization_id == organization_id)
        .all()
    }
    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.add(
            OrganizationSetting(
                organization_id=organization_id,
                setting_key=key,
                setting_value=json.dumps({'value': value}),
            )
        )
        created += 1
    db.commit()
    return created


def get_max_concurrent_students(db: Session, organization_id: int) -> int:
    return max(1, int(get_setting(db, organization_id, MAX_CONCURRENT_STUDENTS)))


def get_time_slot_interval_minutes(db: Session, organization_id: int) -> int:
    return int(get_setting(db, organization_id, TIME_SLOT_INTERVAL_MINUTES))


class SqlAlchemySettingsReader(SettingsReader):
    def __init__(self, db: Session) -> None:
        self._db = db

    def get_max_concurrent_students(self, organization_id: int) -> int:
        return get_max_concurrent_students(self._db, organization_id)

import sys

import httpx
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import text

from classbook.config import settings
from classbook.core import kst
from classbook.core.time_provider import default_time_provider
from classbook.db import engine, session_scope
from classbook.models import Organization, OrganizationSetting
from classbook.services.settings_service import DEFAULT_SETTINGS, get_max_concurrent_students


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity_and_write():
    with engine.begin() as conn:
        conn.execute(text('SELECT 1'))
        conn.execute(text('CREATE TABLE IF NOT EXISTS _healthcheck_probe (id INTEGER PRIMARY KEY, note TEXT)'))
        conn.execute(text("INSERT INTO _healthcheck_probe (note) VALUES ('probe')"))
        conn.execute(text("DELETE FROM _healthcheck_probe WHERE note='probe'"))
        conn.execute(text('DROP TABLE IF EXISTS _healthcheck_probe'))
    return 'connect + write ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_kst_clock():
    parts = kst.now(default_time_provider)
    instant = kst.from_components(
        parts.year, parts.month, parts.day, parts.hour, parts.minute, parts.second, parts.microsecond
    )
    again = kst.to_components(instant)
    if again != parts:
        raise RuntimeError(f'KST round trip mismatch {again} != {parts}')
    return f'today={kst.date_key(instant)}'


def check_organization_settings():
    with session_scope() as db:
        organizations = db.query(Organization).all()
        for organization in organizations:
            stored = {
                key
                for (key,) in db.query(OrganizationSetting.setting_key)
                .filter(OrganizationSetting.organization_id == organization.id)
                .all()
            }
            missing = set(DEFAULT_SETTINGS) - stored
            if missing:
                raise RuntimeError(f'org={organization.id} missing settings {sorted(missing)}; run bootstrap.py')
            get_max_concurrent_students(db, organization.id)
        return f'organizations={len(organizations)}'


def check_http_health():
    res = httpx.get(f'{settings.app_base_url}/health', timeout=8)
    if res.status_code != 200:
        raise RuntimeError(f'HTTP {res.status_code} from /health')
    return 'health ok'


def main():
    checks = [
        ('Database connectivity and write access', check_db_connectivity_and_write),
        ('Alembic migration status at head', check_alembic_head),
        ('KST clock round trip', check_kst_clock),
        ('Organization settings readable', check_organization_settings),
        ('HTTP health endpoint reachable', check_http_health),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from classbook.config import settings
from classbook.request_context import describe_context


Base = declarative_base()

_slow_logger = logging.getLogger('classbook.db.slow_query')


def _log_slow_queries(engine: Engine, threshold_ms: float) -> None:
    @event.listens_for(engine, 'before_cursor_execute')
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, 'after_cursor_execute')
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, '_query_start_time', None)
        if started is None:
            return
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms < threshold_ms:
            return
        _slow_logger.warning(
            'slow_query duration_ms=%.2f %s sql=%s',
            duration_ms,
            describe_context(),
            ' '.join((statement or '').split()),
        )


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute('PRAGMA foreign_keys=ON')
        finally:
            cursor.close()


def build_engine(database_url: str, *, slow_query_ms: float | None = None) -> Engine:
    """Engine with slow-query logging; SQLite gets thread sharing and enforced foreign keys."""
    is_sqlite = database_url.startswith('sqlite')
    built = create_engine(
        database_url,
        connect_args={'check_same_thread': False} if is_sqlite else {},
        pool_pre_ping=not is_sqlite,
    )
    if is_sqlite:
        _enable_sqlite_foreign_keys(built)
    _log_slow_queries(built, settings.db_slow_query_ms if slow_query_ms is None else slow_query_ms)
    return built


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db():
    with session_scope() as db:
        yield db

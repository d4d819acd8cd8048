from __future__ import annotations

import time
from datetime import timedelta

from classbook.core import kst
from classbook.core.time_provider import default_time_provider
from classbook.db import session_scope
from classbook.models import Organization, Profile, Role, Schedule
from classbook.services.schedule_query_service import get_monthly_schedules, get_student_stats
from classbook.stores.sqlalchemy_store import SqlAlchemyScheduleStore


def time_query(label: str, fn, runs: int = 3) -> None:
    timings = []
    for _ in range(runs):
        started = time.perf_counter()
        fn()
        timings.append((time.perf_counter() - started) * 1000.0)
    avg_ms = sum(timings) / len(timings) if timings else 0.0
    print(f"{label}: avg_ms={avg_ms:.2f} runs={runs} samples={[round(x, 2) for x in timings]}")


def main() -> None:
    with session_scope() as db:
        organization_id = db.query(Organization.id).order_by(Organization.id.asc()).limit(1).scalar()
        student_id = (
            db.query(Profile.id)
            .filter(Profile.role == Role.STUDENT.value)
            .order_by(Profile.id.asc())
            .limit(1)
            .scalar()
        )
        now = default_time_provider.now()
        store = SqlAlchemyScheduleStore(db)

        if organization_id is not None:
            today = kst.now(default_time_provider)
            time_query(
                "monthly_schedules_uncached",
                lambda: get_monthly_schedules(db, organization_id, today.year, today.month + 1, bypass_cache=True),
            )
            time_query(
                "capacity_overlap_count",
                lambda: store.count_overlapping(organization_id, now, now + timedelta(hours=3)),
            )

        if student_id is not None:
            time_query(
                "student_overlap_count",
                lambda: store.count_overlapping_for_student(student_id, now, now + timedelta(hours=3)),
            )
            time_query("student_stats", lambda: get_student_stats(db, student_id, now=now))
            time_query(
                "student_schedule_rows",
                lambda: db.query(Schedule).filter(Schedule.student_id == student_id).all(),
            )


if __name__ == "__main__":
    main()

from __future__ import annotations

from datetime import datetime

from classbook.stores.interfaces import ScheduleStore


def has_student_conflict(
    store: ScheduleStore,
    student_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_schedule_id: int | None = None,
) -> bool:
    # Matched by student id only, across every organization.
    return store.count_overlapping_for_student(student_id, start_time, end_time, exclude_schedule_id) > 0

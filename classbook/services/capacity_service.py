from __future__ import annotations

import logging
from datetime import datetime

from classbook.domain.booking import CapacityCheck
from classbook.stores.interfaces import ScheduleStore, SettingsReader


logger = logging.getLogger(__name__)


def check_capacity(
    store: ScheduleStore,
    settings_reader: SettingsReader,
    organization_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_schedule_id: int | None = None,
) -> CapacityCheck:
    """Count organization-wide overlaps for [start_time, end_time) against the configured maximum."""
    max_count = int(settings_reader.get_max_concurrent_students(organization_id))
    current_count = store.count_overlapping(organization_id, start_time, end_time, exclude_schedule_id)
    allowed = current_count < max_count
    if not allowed:
        logger.info(
            'capacity_full org=%s start=%s end=%s current=%s max=%s',
            organization_id,
            start_time.isoformat(),
            end_time.isoformat(),
            current_count,
            max_count,
        )
    return CapacityCheck(allowed=allowed, current_count=current_count, max_count=max_count)

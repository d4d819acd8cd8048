from __future__ import annotations

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from classbook.core.time_provider import TimeProvider, default_time_provider
from classbook.db import get_db
from classbook.domain.booking import Rejected, RejectionReason
from classbook.services.scheduling_service import SchedulingEngine, build_scheduling_engine


_CONFLICT_REASONS = {RejectionReason.CAPACITY_EXCEEDED, RejectionReason.STUDENT_CONFLICT}


def get_time_provider() -> TimeProvider:
    return default_time_provider


def get_scheduling_engine(
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
) -> SchedulingEngine:
    return build_scheduling_engine(db, time_provider)


def rejection_error(result: Rejected) -> HTTPException:
    status_code = 409 if result.reason in _CONFLICT_REASONS else 400
    return HTTPException(
        status_code=status_code,
        detail={
            'reason': result.reason.value,
            'message': result.message,
            'detail': result.detail,
        },
    )

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from classbook.core import kst
from classbook.core.router_guard import SessionUser, require_student
from classbook.core.slots import DURATION_OPTIONS, generate_time_slots
from classbook.core.time_provider import TimeProvider
from classbook.db import get_db
from classbook.dependencies import get_scheduling_engine, get_time_provider, rejection_error
from classbook.domain.booking import ActingRole, BookingRequest, Rejected
from classbook.domain.errors import BookingPermissionError, ScheduleNotFoundError
from classbook.request_context import EndpointNameRoute
from classbook.schemas import StudentBookingCreateRequest
from classbook.services.registration_window_service import allowed_range
from classbook.services.scheduling_service import SchedulingEngine
from classbook.services.schedule_query_service import (
    get_student_next_week_schedules,
    get_student_schedules,
    get_student_stats,
    get_student_week_schedules,
)
from classbook.services.settings_service import get_time_slot_interval_minutes


router = APIRouter(prefix='/api/schedules', tags=['Student Schedules'], route_class=EndpointNameRoute)


@router.get('/window')
def api_booking_window(
    user: SessionUser = Depends(require_student),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    start, end = allowed_range(now=time_provider.now())
    interval = get_time_slot_interval_minutes(db, user.organization_id)
    return {
        'data': {
            'allowed_start': kst.date_key(start),
            'allowed_end': kst.date_key(end),
            'durations': [
                {'slots': option.slots, 'label': option.label, 'hours': option.hours}
                for option in DURATION_OPTIONS
            ],
            'time_slots': generate_time_slots(interval),
        }
    }


@router.post('', status_code=201)
def api_create_own_schedule(
    payload: StudentBookingCreateRequest,
    user: SessionUser = Depends(require_student),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        request = BookingRequest(
            organization_id=user.organization_id,
            student_id=user.user_id,
            date=payload.date,
            start_time=payload.start_time,
            duration_slots=payload.duration_slots,
            program_id=payload.program_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    result = engine.create_booking(request, ActingRole.STUDENT)
    if isinstance(result, Rejected):
        raise rejection_error(result)
    return {'data': {'schedule_id': result.schedule_id}}


@router.delete('/{schedule_id}')
def api_cancel_own_schedule(
    schedule_id: int,
    user: SessionUser = Depends(require_student),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        result = engine.cancel_booking(schedule_id, user.user_id)
    except ScheduleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BookingPermissionError as exc:
        raise HTTPException(status_code=403, detail='Forbidden') from exc
    if isinstance(result, Rejected):
        raise rejection_error(result)
    return {'data': {'schedule_id': result.schedule_id, 'deleted_count': result.deleted_count}}


@router.get('/mine')
def api_my_schedules(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    user: SessionUser = Depends(require_student),
    db: Session = Depends(get_db),
):
    return {'data': get_student_schedules(db, user.user_id, year=year, month=month)}


@router.get('/week')
def api_my_week(
    user: SessionUser = Depends(require_student),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    now = time_provider.now()
    return {
        'data': {
            'this_week': get_student_week_schedules(db, user.user_id, now=now),
            'next_week': get_student_next_week_schedules(db, user.user_id, now=now),
        }
    }


@router.get('/stats')
def api_my_stats(
    user: SessionUser = Depends(require_student),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    return {'data': get_student_stats(db, user.user_id, now=time_provider.now())}

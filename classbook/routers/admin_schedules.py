from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from classbook.core.router_guard import SessionUser, require_admin
from classbook.core.time_provider import TimeProvider
from classbook.db import get_db
from classbook.dependencies import get_scheduling_engine, get_time_provider, rejection_error
from classbook.domain.booking import ActingRole, BookingChanges, BookingRequest, MutationScope, Rejected
from classbook.domain.errors import ScheduleNotFoundError
from classbook.request_context import EndpointNameRoute
from classbook.schemas import BookingCreateRequest, BookingUpdateRequest
from classbook.services.scheduling_service import SchedulingEngine
from classbook.services.schedule_query_service import (
    get_daily_schedules,
    get_dashboard_counts,
    get_monthly_schedules,
    get_schedule,
)


router = APIRouter(prefix='/api/admin', tags=['Admin Schedules'], route_class=EndpointNameRoute)


@router.post('/schedules', status_code=201)
def api_create_schedule(
    payload: BookingCreateRequest,
    user: SessionUser = Depends(require_admin),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        request = BookingRequest(
            organization_id=user.organization_id,
            student_id=payload.student_id,
            date=payload.date,
            start_time=payload.start_time,
            duration_slots=payload.duration_slots,
            program_id=payload.program_id,
            recurring=payload.is_recurring,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    result = engine.create_booking(request, ActingRole.ADMIN)
    if isinstance(result, Rejected):
        raise rejection_error(result)
    return {'data': {'schedule_id': result.schedule_id, 'occurrence_count': result.occurrence_count}}


@router.put('/schedules/{schedule_id}')
def api_update_schedule(
    schedule_id: int,
    payload: BookingUpdateRequest,
    user: SessionUser = Depends(require_admin),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        changes = BookingChanges(
            student_id=payload.student_id,
            date=payload.date,
            start_time=payload.start_time,
            duration_slots=payload.duration_slots,
            program_id=payload.program_id,
        )
        result = engine.update_booking(
            schedule_id,
            changes,
            MutationScope(payload.scope),
            organization_id=user.organization_id,
        )
    except ScheduleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(result, Rejected):
        raise rejection_error(result)
    return {'data': {'schedule_id': result.schedule_id, 'affected_count': result.affected_count}}


@router.delete('/schedules/{schedule_id}')
def api_delete_schedule(
    schedule_id: int,
    scope: MutationScope = Query(default=MutationScope.SINGLE),
    user: SessionUser = Depends(require_admin),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        result = engine.delete_booking(schedule_id, scope, organization_id=user.organization_id)
    except ScheduleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(result, Rejected):
        raise rejection_error(result)
    return {'data': {'schedule_id': result.schedule_id, 'deleted_count': result.deleted_count}}


@router.get('/schedules')
def api_monthly_schedules(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    bypass_cache: bool = Query(default=False),
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {'data': get_monthly_schedules(db, user.organization_id, year, month, bypass_cache=bypass_cache)}


@router.get('/schedules/day')
def api_daily_schedules(
    date_value: date = Query(..., alias='date'),
    bypass_cache: bool = Query(default=False),
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {'data': get_daily_schedules(db, user.organization_id, date_value, bypass_cache=bypass_cache)}


@router.get('/schedules/{schedule_id}')
def api_get_schedule(
    schedule_id: int,
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    payload = get_schedule(db, schedule_id, organization_id=user.organization_id)
    if payload is None:
        raise HTTPException(status_code=404, detail='Schedule not found')
    return {'data': payload}


@router.get('/dashboard')
def api_dashboard(
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    return {'data': get_dashboard_counts(db, user.organization_id, now=time_provider.now())}

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from classbook.core.router_guard import SessionUser, require_admin
from classbook.db import get_db
from classbook.request_context import EndpointNameRoute
from classbook.schemas import SettingUpdateRequest
from classbook.services.settings_service import get_all_settings, update_setting


router = APIRouter(prefix='/api/admin/settings', tags=['Settings'], route_class=EndpointNameRoute)


@router.get('')
def api_get_settings(
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {'data': get_all_settings(db, user.organization_id)}


@router.put('')
def api_update_setting(
    payload: SettingUpdateRequest,
    user: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        update_setting(db, user.organization_id, payload.key, payload.value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {'data': get_all_settings(db, user.organization_id)}

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import HTTPException, Request

from classbook.models import Role
from classbook.services.auth_service import validate_session_token


SESSION_COOKIE = 'auth_session'


@dataclass(frozen=True)
class SessionUser:
    user_id: int
    role: str
    organization_id: int


def _resolve_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def require_auth_user(request: Request) -> SessionUser:
    session = validate_session_token(_resolve_token(request))
    if not session:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user_id = int(session.get('user_id') or 0)
    organization_id = int(session.get('organization_id') or 0)
    if user_id <= 0 or organization_id <= 0:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return SessionUser(
        user_id=user_id,
        role=str(session.get('role') or '').strip().lower(),
        organization_id=organization_id,
    )


def require_roles(*roles: Role) -> Callable[[Request], SessionUser]:
    allowed = {role.value for role in roles}

    def dependency(request: Request) -> SessionUser:
        user = require_auth_user(request)
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail='Forbidden')
        return user

    return dependency


require_admin = require_roles(Role.ADMIN)
require_student = require_roles(Role.STUDENT)

"""HS256 session tokens.

Sign-in itself belongs to an external identity service. This module only
issues and validates the signed session that carries the profile id, role
and organization of the caller.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import threading
from datetime import timedelta

from classbook.config import settings
from classbook.core.time_provider import TimeProvider, default_time_provider


_REVOKED_TOKENS: set[str] = set()
_TOKENS_LOCK = threading.RLock()
logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=settings.auth_session_expiry_hours)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _sign(signing_input: bytes) -> bytes:
    return hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    return f'{header_part}.{payload_part}.{_b64url_encode(_sign(signing_input))}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
    except ValueError:
        return None

    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    try:
        provided_signature = _b64url_decode(signature_part)
    except ValueError:
        return None
    if not hmac.compare_digest(provided_signature, _sign(signing_input)):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def issue_session_token(
    profile_id: int,
    role: str,
    organization_id: int,
    *,
    ttl: timedelta = SESSION_TTL,
    time_provider: TimeProvider = default_time_provider,
) -> str:
    expires_at = time_provider.now() + ttl
    return _encode_jwt(
        {
            'sub': int(profile_id),
            'role': str(role).strip().lower(),
            'organization_id': int(organization_id),
            'exp': int(expires_at.timestamp()),
        }
    )


def validate_session_token(
    token: str | None,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict | None:
    if not token:
        return None
    with _TOKENS_LOCK:
        if token in _REVOKED_TOKENS:
            return None

    payload = _decode_jwt(token)
    if not payload:
        return None

    expires_at = int(payload.get('exp') or 0)
    if expires_at and expires_at <= int(time_provider.now().timestamp()):
        logger.info('session_token_expired sub=%s', payload.get('sub'))
        return None

    role = payload.get('role')
    user_id = payload.get('sub')
    organization_id = int(payload.get('organization_id') or 0)
    if not role or user_id is None or organization_id <= 0:
        return None
    return {
        'user_id': int(user_id),
        'role': str(role),
        'organization_id': organization_id,
    }


def clear_session_token(token: str | None) -> None:
    if not token:
        return
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.add(token)

"""Security: signed session cookie, rate limiting and ops bearer tokens."""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from slowapi import Limiter
from slowapi.util import get_remote_address

from fulbito.config import Settings, get_settings
from fulbito.telemetry.sentry import set_user_context

logger = logging.getLogger(__name__)

SESSION_SALT = "fulbito-session"

# Rate limiter using client IP by default; write endpoints key by session user
limiter = Limiter(key_func=get_remote_address)


@dataclass(frozen=True)
class SessionData:
    """Verified session: our user id plus the delegated record-store token."""

    user_id: str
    record_token: str


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.SESSION_SECRET, salt=SESSION_SALT)


def mint_session_token(user_id: str, record_token: str, settings: Optional[Settings] = None) -> str:
    """
    Sign a session payload.

    Cookie issuance belongs to the login flow; this helper exists for that flow
    and for tests.
    """
    settings = settings or get_settings()
    return _serializer(settings).dumps({"uid": user_id, "pbt": record_token})


def read_session_token(token: Optional[str], settings: Optional[Settings] = None) -> Optional[SessionData]:
    """Verify signature and age. Returns None for anything invalid."""
    settings = settings or get_settings()
    if not token or not settings.SESSION_SECRET:
        return None
    try:
        payload = _serializer(settings).loads(token, max_age=settings.SESSION_MAX_AGE_SECONDS)
    except BadSignature:
        # SignatureExpired is a BadSignature
        return None
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("uid")
    record_token = payload.get("pbt")
    if not isinstance(user_id, str) or not user_id or not isinstance(record_token, str) or not record_token:
        return None
    return SessionData(user_id=user_id, record_token=record_token)


def get_session_from_request(request: Request, settings: Optional[Settings] = None) -> Optional[SessionData]:
    settings = settings or get_settings()
    return read_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME), settings)


async def require_session(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> SessionData:
    """FastAPI dependency: 401 unless the request carries a valid session cookie."""
    session = get_session_from_request(request, settings)
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    set_user_context(session.user_id)
    return session


def session_rate_limit_key(request: Request) -> str:
    """Bucket per session user, falling back to client IP."""
    session = get_session_from_request(request)
    if session is not None:
        return f"user:{session.user_id}"
    return get_remote_address(request)


def prediction_write_limit() -> str:
    return get_settings().PREDICTION_WRITE_RATE_LIMIT


# =============================================================================
# Ops bearer tokens (/metrics, /health/ready)
# =============================================================================


def check_bearer(authorization: Optional[str], expected: str) -> Optional[str]:
    """
    Validate "Bearer <token>" against `expected`.

    Returns None when accepted, otherwise a short reason. An empty `expected`
    disables the check.
    """
    if not expected:
        return None
    if not authorization:
        return "Missing Authorization header"
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return "Invalid Authorization format"
    if not hmac.compare_digest(parts[1].strip(), expected):
        return "Invalid token"
    return None

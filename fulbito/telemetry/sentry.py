"""
Sentry error tracking for the prode API.

Events never carry the session cookie, the delegated PocketBase token or the
API-Football key. Prediction bodies (user guesses) are dropped.
"""

import logging
import re
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from fulbito.config import Settings, get_settings

logger = logging.getLogger(__name__)

_sentry_initialized = False

REDACTED = "[REDACTED]"

REDACTED_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-apisports-key",
        "x-rapidapi-key",
    }
)

_SECRET_QUERY = re.compile(r"(?i)\b(token|key|secret)=([^&]*)")


def redact_event(event: dict, hint: Optional[dict] = None) -> dict:
    """before_send hook: strip credentials and prediction payloads from the request block."""
    request = event.get("request")
    if not isinstance(request, dict):
        return event

    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            name: REDACTED if name.lower() in REDACTED_HEADERS else value
            for name, value in headers.items()
        }

    query_string = request.get("query_string")
    if isinstance(query_string, str):
        request["query_string"] = _SECRET_QUERY.sub(rf"\1={REDACTED}", query_string)

    if "cookies" in request:
        request["cookies"] = REDACTED
    request.pop("data", None)
    return event


def init_sentry(settings: Optional[Settings] = None) -> bool:
    """Initialize the SDK once. No-op (False) without SENTRY_DSN."""
    global _sentry_initialized

    if _sentry_initialized:
        return True

    settings = settings or get_settings()
    if not settings.SENTRY_DSN:
        logger.info("[SENTRY] Not configured (SENTRY_DSN not set)")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        before_send=redact_event,
    )

    _sentry_initialized = True
    logger.info(
        f"[SENTRY] Initialized: env={settings.SENTRY_ENVIRONMENT}, "
        f"traces_sample_rate={settings.SENTRY_TRACES_SAMPLE_RATE}"
    )
    return True


def set_user_context(user_id: Optional[str] = None) -> None:
    """Tag the current scope with the session user id only."""
    if not _sentry_initialized or not user_id:
        return
    sentry_sdk.set_user({"id": user_id})

"""Tests for session tokens and ops bearer checks."""

import pytest
from fastapi import HTTPException
from itsdangerous import URLSafeTimedSerializer
from starlette.requests import Request

from fulbito.security import (
    SESSION_SALT,
    check_bearer,
    mint_session_token,
    read_session_token,
    require_session,
)


def _request_with_cookie(name, value):
    headers = [(b"cookie", f"{name}={value}".encode())] if value else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


class TestSessionTokens:

    def test_round_trip(self, settings):
        token = mint_session_token("u1", "pb-token", settings)
        session = read_session_token(token, settings)
        assert session.user_id == "u1"
        assert session.record_token == "pb-token"

    def test_tampered(self, settings):
        token = mint_session_token("u1", "pb-token", settings)
        assert read_session_token(token[:-2] + "xx", settings) is None

    def test_wrong_secret(self, settings):
        token = mint_session_token("u1", "pb-token", settings)
        settings.SESSION_SECRET = "rotated"
        assert read_session_token(token, settings) is None

    def test_expired(self, settings):
        token = mint_session_token("u1", "pb-token", settings)
        settings.SESSION_MAX_AGE_SECONDS = -1
        assert read_session_token(token, settings) is None

    def test_missing_fields(self, settings):
        token = URLSafeTimedSerializer(settings.SESSION_SECRET, salt=SESSION_SALT).dumps({"uid": "u1"})
        assert read_session_token(token, settings) is None

    def test_empty(self, settings):
        assert read_session_token(None, settings) is None
        assert read_session_token("", settings) is None


class TestRequireSession:

    @pytest.mark.asyncio
    async def test_valid_cookie(self, settings):
        token = mint_session_token("u1", "pb-token", settings)
        session = await require_session(_request_with_cookie(settings.SESSION_COOKIE_NAME, token), settings)
        assert session.user_id == "u1"

    @pytest.mark.asyncio
    async def test_missing_cookie(self, settings):
        with pytest.raises(HTTPException) as exc_info:
            await require_session(_request_with_cookie(settings.SESSION_COOKIE_NAME, None), settings)
        assert exc_info.value.status_code == 401


class TestCheckBearer:

    def test_disabled_when_no_token_configured(self):
        assert check_bearer(None, "") is None

    def test_accepts_matching(self):
        assert check_bearer("Bearer s3cret", "s3cret") is None
        assert check_bearer("bearer s3cret", "s3cret") is None

    @pytest.mark.parametrize(
        "header,reason",
        [
            (None, "Missing Authorization header"),
            ("s3cret", "Invalid Authorization format"),
            ("Basic s3cret", "Invalid Authorization format"),
            ("Bearer wrong", "Invalid token"),
        ],
    )
    def test_rejections(self, header, reason):
        assert check_bearer(header, "s3cret") == reason

"""
Tests for Credential & Session Management
=========================================
Covers:
- Strava refresh: rotated refresh token is persisted before the access
  token is returned (A → B)
- Strava refresh: missing stored token, missing client config, rejected
  refresh, malformed response, failed persistence
- Tidepool login: session token from header, userid from body, failures

Run: pytest tests/test_credentials.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
import respx
from httpx import Response

from app.services.credentials import (
    STRAVA_REFRESH_TOKEN_KEY,
    STRAVA_TOKEN_URL,
    TIDEPOOL_API,
    TIDEPOOL_SESSION_HEADER,
    CredentialStore,
    StravaTokenManager,
    TidepoolSessionManager,
)
from app.services.errors import AuthError, FetchError

_TOKEN_RESPONSE = {
    "access_token": "access-1",
    "refresh_token": "refresh-B",
    "expires_at": 1773140000,
    "token_type": "Bearer",
}


def _seed(fake_db, value: str = "refresh-A") -> None:
    fake_db.tables["settings"] = [{"id": 1, "key": STRAVA_REFRESH_TOKEN_KEY, "value": value}]


# ---------------------------------------------------------------------------
# Strava
# ---------------------------------------------------------------------------

class TestStravaRefresh:

    @pytest.mark.asyncio
    @respx.mock
    async def test_rotated_token_is_persisted(self, fake_db, repository):
        _seed(fake_db, "refresh-A")
        route = respx.post(STRAVA_TOKEN_URL).mock(return_value=Response(200, json=_TOKEN_RESPONSE))

        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            access = await manager.refresh("123", "shh")

        assert access == "access-1"
        assert repository.get_setting(STRAVA_REFRESH_TOKEN_KEY) == "refresh-B"
        sent = route.calls[0].request
        assert b"refresh-A" in sent.content
        assert b"refresh_token" in sent.content

    @pytest.mark.asyncio
    async def test_missing_stored_token(self, repository):
        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            with pytest.raises(AuthError, match="no refresh token"):
                await manager.refresh("123", "shh")

    @pytest.mark.asyncio
    async def test_missing_client_config(self, fake_db, repository):
        _seed(fake_db)
        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            with pytest.raises(AuthError):
                await manager.refresh("", "")

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_refresh_keeps_stored_token(self, fake_db, repository):
        _seed(fake_db, "refresh-A")
        respx.post(STRAVA_TOKEN_URL).mock(
            return_value=Response(400, json={"message": "Bad Request", "errors": [{"code": "invalid"}]})
        )

        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            with pytest.raises(AuthError) as exc_info:
                await manager.refresh("123", "shh")

        assert exc_info.value.status_code == 400
        assert repository.get_setting(STRAVA_REFRESH_TOKEN_KEY) == "refresh-A"

    @pytest.mark.asyncio
    @respx.mock
    async def test_response_without_refresh_token(self, fake_db, repository):
        _seed(fake_db)
        respx.post(STRAVA_TOKEN_URL).mock(return_value=Response(200, json={"access_token": "x"}))

        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            with pytest.raises(AuthError):
                await manager.refresh("123", "shh")

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_persist_withholds_access_token(self):
        respx.post(STRAVA_TOKEN_URL).mock(return_value=Response(200, json=_TOKEN_RESPONSE))
        store = MagicMock()
        store.get_credential.return_value = "refresh-A"
        store.save_credential.side_effect = RuntimeError("db down")

        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(store, http)
            with pytest.raises(AuthError, match="persist"):
                await manager.refresh("123", "shh")

        store.save_credential.assert_called_once_with(STRAVA_REFRESH_TOKEN_KEY, "refresh-B")

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_fetch_error(self, fake_db, repository):
        _seed(fake_db)
        respx.post(STRAVA_TOKEN_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        async with httpx.AsyncClient() as http:
            manager = StravaTokenManager(CredentialStore(repository), http)
            with pytest.raises(FetchError):
                await manager.refresh("123", "shh")


# ---------------------------------------------------------------------------
# Tidepool
# ---------------------------------------------------------------------------

class TestTidepoolLogin:

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_returns_session(self):
        route = respx.post(f"{TIDEPOOL_API}/auth/login").mock(
            return_value=Response(
                200,
                json={"userid": "u-42", "emails": ["me@example.com"]},
                headers={TIDEPOOL_SESSION_HEADER: "session-token"},
            )
        )

        async with httpx.AsyncClient() as http:
            session = await TidepoolSessionManager(http).login("me@example.com", "pw")

        assert session.token == "session-token"
        assert session.user_id == "u-42"
        assert route.calls[0].request.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_login(self):
        respx.post(f"{TIDEPOOL_API}/auth/login").mock(return_value=Response(401, text="nope"))

        async with httpx.AsyncClient() as http:
            with pytest.raises(AuthError) as exc_info:
                await TidepoolSessionManager(http).login("me@example.com", "bad")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_session_header(self):
        respx.post(f"{TIDEPOOL_API}/auth/login").mock(return_value=Response(200, json={"userid": "u-42"}))

        async with httpx.AsyncClient() as http:
            with pytest.raises(AuthError, match="session token"):
                await TidepoolSessionManager(http).login("me@example.com", "pw")

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        async with httpx.AsyncClient() as http:
            with pytest.raises(AuthError):
                await TidepoolSessionManager(http).login("", "")

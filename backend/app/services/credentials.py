"""
Credential & Session Management
===============================
Two ways of getting an upstream credential:

- Strava: OAuth2 refresh-token grant. Strava ROTATES the refresh token on
  every use, so the token in the response must be written back to the
  ``settings`` table before the access token is handed out. Skip that and
  the next cycle fails with an invalidated refresh token.
- Tidepool: stateless email/password login returning a session token in a
  response header. Nothing is persisted.

Missing or rejected credentials raise AuthError (not retried within a
cycle). Transport failures raise FetchError so the two stay distinguishable.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.models.strava import StravaTokenResponse
from app.models.tidepool import TidepoolSession
from app.services.errors import AuthError, FetchError, truncate
from app.services.persistence import SupabaseRepository

logger = logging.getLogger(__name__)

STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_REFRESH_TOKEN_KEY = "strava_refresh_token"

TIDEPOOL_API = "https://api.tidepool.org"
TIDEPOOL_SESSION_HEADER = "x-tidepool-session-token"


class CredentialStore:
    """Key/value credential access on top of the settings table."""

    def __init__(self, repository: SupabaseRepository) -> None:
        self._repository = repository

    def get_credential(self, key: str) -> Optional[str]:
        return self._repository.get_setting(key)

    def save_credential(self, key: str, value: str) -> None:
        self._repository.save_setting(key, value)


class StravaTokenManager:
    """Exchanges the stored refresh token for a short-lived access token."""

    def __init__(self, store: CredentialStore, http: httpx.AsyncClient) -> None:
        self._store = store
        self._http = http

    async def refresh(self, client_id: str, client_secret: str) -> str:
        """Return a fresh access token, persisting the rotated refresh token first."""
        stored = self._store.get_credential(STRAVA_REFRESH_TOKEN_KEY)
        if not stored:
            raise AuthError("strava", "no refresh token stored")
        if not client_id or not client_secret:
            raise AuthError("strava", "client id/secret not configured")

        try:
            response = await self._http.post(
                STRAVA_TOKEN_URL,
                json={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": stored,
                },
            )
        except httpx.HTTPError as exc:
            raise FetchError("strava", None, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise AuthError(
                "strava",
                f"token refresh rejected ({response.status_code}): {truncate(response.text)}",
                status_code=response.status_code,
            )

        try:
            token = StravaTokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise AuthError("strava", "token response missing access/refresh token") from exc

        try:
            self._store.save_credential(STRAVA_REFRESH_TOKEN_KEY, token.refresh_token)
        except Exception as exc:
            # The old token is already spent upstream
            raise AuthError("strava", f"could not persist rotated refresh token: {exc}") from exc

        if token.refresh_token != stored:
            logger.info("Strava refresh token rotated and persisted")
        return token.access_token


class TidepoolSessionManager:
    """Logs in to Tidepool; the session lives only for this invocation."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def login(self, email: str, password: str) -> TidepoolSession:
        if not email or not password:
            raise AuthError("tidepool", "email/password not configured")

        try:
            response = await self._http.post(
                f"{TIDEPOOL_API}/auth/login",
                auth=httpx.BasicAuth(email, password),
            )
        except httpx.HTTPError as exc:
            raise FetchError("tidepool", None, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise AuthError(
                "tidepool",
                f"login rejected ({response.status_code})",
                status_code=response.status_code,
            )

        token = response.headers.get(TIDEPOOL_SESSION_HEADER)
        if not token:
            raise AuthError("tidepool", "login response missing session token")

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError("tidepool", "login response body is not JSON") from exc
        user_id = body.get("userid") if isinstance(body, dict) else None
        if not user_id:
            raise AuthError("tidepool", "login response missing userid")

        logger.debug("Tidepool session opened for %s", user_id)
        return TidepoolSession(token=token, user_id=user_id)

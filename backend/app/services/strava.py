"""
Strava Heart Rate Sync
======================
Strava is the secondary source for running sessions: we never create
sessions from it. Its only job is to supply heart rate for sessions that
arrived from Tidepool without any.

Flow: refresh access token (rotating the stored refresh token) → page
through ``/athlete/activities`` since the lookback start → keep activities
with both avg and max HR → reconcile against stored sessions missing HR →
write the matched HR fields.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import httpx

from app.models.strava import StravaActivity
from app.models.sync import StravaSyncResult, SyncStage
from app.services.credentials import StravaTokenManager
from app.services.errors import ValidationError
from app.services.http import ArrayPage, FetchResult, paginate, parse_items, parse_page, request_json
from app.services.normalizer import normalize_strava_activity
from app.services.persistence import SupabaseRepository
from app.services.reconciliation import SessionMatcher, reconcile

logger = logging.getLogger(__name__)

STRAVA_API_BASE = "https://www.strava.com/api/v3"
SOURCE = "strava"


class StravaClient:
    """Bearer-authenticated reads from the Strava v3 API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: str,
        per_page: int = 50,
        page_delay_seconds: float = 0.5,
    ) -> None:
        self._http = http
        self._token = access_token
        self._per_page = per_page
        self._page_delay = page_delay_seconds

    async def fetch_activities(
        self, after: datetime, before: Optional[datetime] = None
    ) -> FetchResult[StravaActivity]:
        """All activities started after ``after``, paging until an empty page."""
        params: dict = {"after": int(after.timestamp()), "per_page": self._per_page}
        if before is not None:
            params["before"] = int(before.timestamp())

        async def fetch_page(page: int) -> tuple[list, Optional[int]]:
            payload = await request_json(
                self._http,
                SOURCE,
                "GET",
                f"{STRAVA_API_BASE}/athlete/activities",
                params={**params, "page": page},
                headers={"Authorization": f"Bearer {self._token}"},
            )
            parsed = parse_page(SOURCE, payload)
            if not isinstance(parsed, ArrayPage):
                raise ValidationError(SOURCE, "activities response is not a JSON array")
            return parsed.items, (page + 1 if parsed.items else None)

        raw = await paginate(SOURCE, fetch_page, 1, delay_seconds=self._page_delay)
        records, rejected = parse_items(SOURCE, StravaActivity, raw.records)
        return FetchResult(records=records, error=raw.error, pages=raw.pages, rejected=rejected)


async def sync_strava_heart_rate(
    repository: SupabaseRepository,
    token_manager: StravaTokenManager,
    http: httpx.AsyncClient,
    *,
    client_id: str,
    client_secret: str,
    window_start: datetime,
    window_end: datetime,
    result: StravaSyncResult,
    page_delay_seconds: float = 0.5,
    matcher: Optional[SessionMatcher] = None,
) -> StravaSyncResult:
    result.stage = SyncStage.AUTHENTICATING
    access_token = await token_manager.refresh(client_id, client_secret)

    result.stage = SyncStage.FETCHING
    client = StravaClient(http, access_token, page_delay_seconds=page_delay_seconds)
    fetched = await client.fetch_activities(window_start)
    if fetched.error and not fetched.records:
        raise fetched.error

    result.stage = SyncStage.NORMALIZING
    candidates = [normalize_strava_activity(a) for a in fetched.records]
    with_hr = [c for c in candidates if c.has_heart_rate]
    result.processed = len(with_hr)
    result.rejected = fetched.rejected
    problems = [str(fetched.error)] if fetched.error else []

    if not with_hr:
        logger.info("Strava: %d activities, none with heart rate", len(candidates))
        result.complete(problems)
        return result

    result.stage = SyncStage.RECONCILING
    sessions = repository.sessions_missing_heart_rate(window_start, window_end)
    outcome = reconcile(sessions, with_hr, matcher)
    result.matched = outcome.matched
    result.unmatched = outcome.unmatched
    result.reclaimed = outcome.reclaimed

    result.stage = SyncStage.PERSISTING
    applied = repository.apply_heart_rate_updates(outcome.updates)
    if applied.failed:
        problems.append(f"{applied.failed} heart rate updates failed")

    logger.info(
        "Strava HR sync: %d matched, %d unmatched, %d reclaimed (%d sessions missing HR)",
        outcome.matched, outcome.unmatched, outcome.reclaimed, len(sessions),
    )
    result.complete(problems)
    return result

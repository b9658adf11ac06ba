"""
Sync Orchestrator
=================
Runs the per-source pipelines for one sync invocation.

- Health sync: glucose, insulin, activity (Tidepool) and Strava HR, all
  launched together with asyncio.gather.
- Code sync: GitHub and Claude Code usage, also concurrent.

Every pipeline runs inside ``_guard``: whatever it raises (or a timeout)
becomes that source's ``error`` and ``status``; siblings are unaffected and
nothing propagates out of ``run()``/``run_code()``.

Configuration is passed in at construction. The orchestrator itself holds
no state beyond one invocation apart from the shared Tidepool session.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from app.config import Settings
from app.models.sync import (
    ActivitySyncResult,
    ClaudeSyncResult,
    CodeSyncResponse,
    GitHubSyncResult,
    HealthSyncResponse,
    IngestResult,
    SourceResult,
    StravaSyncResult,
    SyncStage,
)
from app.models.tidepool import TidepoolSession
from app.services.claude_usage import ClaudeUsageClient, sync_claude_usage
from app.services.credentials import CredentialStore, StravaTokenManager, TidepoolSessionManager
from app.services.errors import AuthError, SyncError
from app.services.github import GitHubClient, sync_github
from app.services.persistence import SupabaseRepository
from app.services.reconciliation import SessionMatcher
from app.services.strava import sync_strava_heart_rate
from app.services.tidepool import TidepoolClient, sync_activity, sync_glucose, sync_insulin

logger = logging.getLogger(__name__)

HEALTH_SOURCES = ("glucose", "insulin", "activity", "strava")
CODE_SOURCES = ("github", "claude")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


class SyncOrchestrator:
    """Sequences auth → fetch → normalise → persist (→ reconcile) per source."""

    def __init__(
        self,
        settings: Settings,
        repository: SupabaseRepository,
        http: httpx.AsyncClient,
        matcher: Optional[SessionMatcher] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._http = http
        self._matcher = matcher
        self._clock = clock
        self._credentials = CredentialStore(repository)
        self._tidepool_lock = asyncio.Lock()
        self._tidepool_session: Optional[TidepoolSession] = None
        self._tidepool_error: Optional[SyncError] = None

    # ---- Entry points ----------------------------------------------------

    async def run(
        self,
        lookback_days: Optional[int] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> HealthSyncResponse:
        """Health sync. ``lookback_days`` widens every window (backfill)."""
        selected = set(sources) if sources else set(HEALTH_SOURCES)
        now = self._clock()
        self._reset_tidepool()

        glucose, insulin = IngestResult(), IngestResult()
        activity, strava = ActivitySyncResult(), StravaSyncResult()
        s = self._settings

        def since(default: timedelta) -> datetime:
            return now - (timedelta(days=lookback_days) if lookback_days else default)

        jobs: dict[str, tuple[SourceResult, Callable[[], Awaitable[object]]]] = {
            "glucose": (glucose, lambda: self._tidepool_job(
                glucose, lambda c: sync_glucose(
                    self._repository, c, since(timedelta(hours=s.glucose_window_hours)), now, glucose))),
            "insulin": (insulin, lambda: self._tidepool_job(
                insulin, lambda c: sync_insulin(
                    self._repository, c, since(timedelta(hours=s.insulin_window_hours)), now, insulin))),
            "activity": (activity, lambda: self._tidepool_job(
                activity, lambda c: sync_activity(
                    self._repository, c, _midnight(since(timedelta(days=s.activity_window_days))), now, activity))),
            "strava": (strava, lambda: sync_strava_heart_rate(
                self._repository,
                StravaTokenManager(self._credentials, self._http),
                self._http,
                client_id=s.strava_client_id,
                client_secret=s.strava_client_secret,
                window_start=since(timedelta(days=s.strava_lookback_days)),
                window_end=now,
                result=strava,
                page_delay_seconds=s.page_delay_seconds,
                matcher=self._matcher,
            )),
        }

        await self._run_selected(jobs, selected)
        return HealthSyncResponse(glucose=glucose, insulin=insulin, activity=activity, strava=strava)

    async def run_code(self, sources: Optional[Iterable[str]] = None) -> CodeSyncResponse:
        selected = set(sources) if sources else set(CODE_SOURCES)
        github, claude = GitHubSyncResult(), ClaudeSyncResult()

        jobs: dict[str, tuple[SourceResult, Callable[[], Awaitable[object]]]] = {
            "github": (github, lambda: self._github_job(github)),
            "claude": (claude, lambda: self._claude_job(claude)),
        }
        await self._run_selected(jobs, selected)
        return CodeSyncResponse(github=github, claude=claude)

    # ---- Jobs ------------------------------------------------------------

    async def _tidepool_job(self, result: SourceResult, pipeline: Callable[[TidepoolClient], Awaitable[object]]) -> None:
        result.stage = SyncStage.AUTHENTICATING
        session = await self._tidepool()
        await pipeline(TidepoolClient(self._http, session))

    async def _github_job(self, result: GitHubSyncResult) -> None:
        s = self._settings
        result.stage = SyncStage.AUTHENTICATING
        if not s.github_token or not s.github_username:
            raise AuthError("github", "GITHUB_TOKEN or GITHUB_USERNAME not configured")
        client = GitHubClient(self._http, s.github_token, page_delay_seconds=s.page_delay_seconds)
        await sync_github(self._repository, client, s.github_username, result)

    async def _claude_job(self, result: ClaudeSyncResult) -> None:
        s = self._settings
        result.stage = SyncStage.AUTHENTICATING
        if not s.anthropic_admin_key:
            raise AuthError("claude", "ANTHROPIC_ADMIN_KEY not configured")
        today = self._clock().date()
        days = [today - timedelta(days=i) for i in range(s.claude_lookback_days, 0, -1)]
        await sync_claude_usage(self._repository, ClaudeUsageClient(self._http, s.anthropic_admin_key), days, result)

    async def _tidepool(self) -> TidepoolSession:
        """Log in once per invocation; later callers reuse the session (or the failure)."""
        async with self._tidepool_lock:
            if self._tidepool_error is not None:
                raise self._tidepool_error
            if self._tidepool_session is None:
                try:
                    self._tidepool_session = await TidepoolSessionManager(self._http).login(
                        self._settings.tidepool_email, self._settings.tidepool_password
                    )
                except SyncError as exc:
                    self._tidepool_error = exc
                    raise
            return self._tidepool_session

    def _reset_tidepool(self) -> None:
        self._tidepool_session = None
        self._tidepool_error = None

    # ---- Isolation -------------------------------------------------------

    async def _run_selected(
        self,
        jobs: dict[str, tuple[SourceResult, Callable[[], Awaitable[object]]]],
        selected: set[str],
    ) -> None:
        guarded = []
        for name, (result, job) in jobs.items():
            if name in selected:
                guarded.append(self._guard(name, result, job()))
            else:
                result.skip()
        await asyncio.gather(*guarded)

    async def _guard(self, name: str, result: SourceResult, job: Awaitable[object]) -> None:
        timeout = self._settings.sync_timeout_seconds
        try:
            await asyncio.wait_for(job, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("[sync] %s timed out after %.0fs during %s", name, timeout, result.stage.value)
            result.fail(f"{name} sync timed out after {timeout:.0f}s")
        except SyncError as exc:
            logger.error("[sync] %s failed during %s: %s", name, result.stage.value, exc)
            result.fail(str(exc))
        except Exception as exc:
            logger.exception("[sync] %s crashed during %s", name, result.stage.value)
            result.fail(f"unexpected error: {exc}")
        else:
            logger.info("[sync] %s finished: %s", name, result.status.value)

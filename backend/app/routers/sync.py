"""
Sync Trigger Router
===================
POST /api/v1/sync       Tidepool glucose, insulin, activity and Strava HR.
POST /api/v1/sync/code  GitHub and Claude Code usage.

Both always answer 200 with one result per source, even when every source
failed: per-source status and error live in the body. The only non-200
answers are 503 (storage not configured) and 422 (bad query parameters).
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Query, status

from app.dependencies import AppSettings, Repository
from app.models.sync import CodeSyncResponse, HealthSyncResponse
from app.services.http import build_http_client
from app.services.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])

HealthSource = Literal["glucose", "insulin", "activity", "strava"]


@router.post(
    "",
    response_model=HealthSyncResponse,
    status_code=status.HTTP_200_OK,
    summary="Sync health sources",
    description=(
        "Fetch the recent window from Tidepool and Strava and write it to "
        "storage. ``lookback_days`` widens every window for a backfill; "
        "``type`` limits the run to one source (the others report skipped)."
    ),
    responses={503: {"description": "Storage unavailable"}},
)
async def sync_health(
    settings: AppSettings,
    repository: Repository,
    lookback_days: Optional[int] = Query(default=None, ge=1, le=365),
    type: Optional[HealthSource] = Query(default=None),
) -> HealthSyncResponse:
    sources = [type] if type else None
    async with build_http_client(settings) as http:
        orchestrator = SyncOrchestrator(settings, repository, http)
        response = await orchestrator.run(lookback_days=lookback_days, sources=sources)

    logger.info(
        "Health sync: glucose=%s insulin=%s activity=%s strava=%s",
        response.glucose.status.value,
        response.insulin.status.value,
        response.activity.status.value,
        response.strava.status.value,
    )
    return response


@router.post(
    "/code",
    response_model=CodeSyncResponse,
    status_code=status.HTTP_200_OK,
    summary="Sync code activity sources",
    responses={503: {"description": "Storage unavailable"}},
)
async def sync_code(settings: AppSettings, repository: Repository) -> CodeSyncResponse:
    async with build_http_client(settings) as http:
        response = await SyncOrchestrator(settings, repository, http).run_code()

    logger.info(
        "Code sync: github=%s claude=%s",
        response.github.status.value,
        response.claude.status.value,
    )
    return response

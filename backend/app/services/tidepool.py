"""
Tidepool Sync
=============
CGM readings, insulin doses and workouts from Tidepool's ``/data/{userId}``
endpoint.

Tidepool returns everything in the window as a single JSON array, so each
fetch is one page. All three pipelines share one login session per sync
invocation (see SyncOrchestrator).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TypeVar

import httpx
from pydantic import BaseModel

from app.models.health import GlucoseReading, InsulinDose, RunningSession, utc_iso
from app.models.sync import ActivitySyncResult, IngestResult, SyncStage
from app.models.tidepool import (
    TidepoolBasal,
    TidepoolBolus,
    TidepoolCBG,
    TidepoolPhysicalActivity,
    TidepoolSession,
)
from app.services.credentials import TIDEPOOL_API, TIDEPOOL_SESSION_HEADER
from app.services.http import FetchResult, paginate, parse_items, parse_page, request_json
from app.services.normalizer import (
    normalize_basal,
    normalize_bolus,
    normalize_cbg,
    normalize_many,
    normalize_physical_activity,
    summarize_activity,
)
from app.services.persistence import ConflictPolicy, SupabaseRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SOURCE = "tidepool"


# ---------------------------------------------------------------------------
# TidepoolClient: data fetches for one logged-in session
# ---------------------------------------------------------------------------

class TidepoolClient:
    """Reads typed device data for the session's user."""

    def __init__(self, http: httpx.AsyncClient, session: TidepoolSession) -> None:
        self._http = http
        self._session = session

    async def fetch_cgm(self, start: datetime, end: datetime) -> FetchResult[TidepoolCBG]:
        return await self._fetch("cbg", TidepoolCBG, start, end)

    async def fetch_boluses(self, start: datetime, end: datetime) -> FetchResult[TidepoolBolus]:
        return await self._fetch("bolus", TidepoolBolus, start, end)

    async def fetch_basals(self, start: datetime, end: datetime) -> FetchResult[TidepoolBasal]:
        return await self._fetch("basal", TidepoolBasal, start, end)

    async def fetch_physical_activity(
        self, start: datetime, end: datetime
    ) -> FetchResult[TidepoolPhysicalActivity]:
        return await self._fetch("physicalActivity", TidepoolPhysicalActivity, start, end)

    async def _fetch(self, data_type: str, model: type[M], start: datetime, end: datetime) -> FetchResult[M]:
        async def fetch_page(_cursor: object) -> tuple[list, None]:
            payload = await request_json(
                self._http,
                SOURCE,
                "GET",
                f"{TIDEPOOL_API}/data/{self._session.user_id}",
                params={"type": data_type, "startDate": utc_iso(start), "endDate": utc_iso(end)},
                headers={TIDEPOOL_SESSION_HEADER: self._session.token},
            )
            return parse_page(SOURCE, payload).items, None

        raw = await paginate(SOURCE, fetch_page, data_type)
        records, rejected = parse_items(SOURCE, model, raw.records)
        logger.debug("Tidepool %s: %d records (%d malformed)", data_type, len(records), rejected)
        return FetchResult(records=records, error=raw.error, pages=raw.pages, rejected=rejected)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

async def sync_glucose(
    repository: SupabaseRepository,
    client: TidepoolClient,
    start: datetime,
    end: datetime,
    result: IngestResult,
) -> IngestResult:
    result.stage = SyncStage.FETCHING
    fetched = await client.fetch_cgm(start, end)
    if fetched.error and not fetched.records:
        raise fetched.error

    result.stage = SyncStage.NORMALIZING
    readings, rejected = normalize_many(SOURCE, normalize_cbg, fetched.records)
    result.processed = len(readings)
    result.rejected = fetched.rejected + rejected

    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records("glucose_readings", readings, "timestamp", ConflictPolicy.IGNORE)
    result.inserted = written.inserted
    result.skipped = written.skipped

    logger.info("Glucose: inserted %d, skipped %d (duplicates or failed)", written.inserted, written.skipped)
    result.complete(_problems(fetched, written.errors))
    return result


async def sync_insulin(
    repository: SupabaseRepository,
    client: TidepoolClient,
    start: datetime,
    end: datetime,
    result: IngestResult,
) -> IngestResult:
    result.stage = SyncStage.FETCHING
    boluses, basals = await asyncio.gather(
        client.fetch_boluses(start, end),
        client.fetch_basals(start, end),
    )
    if not boluses.records and not basals.records:
        error = boluses.error or basals.error
        if error:
            raise error

    result.stage = SyncStage.NORMALIZING
    bolus_doses, rejected_bolus = normalize_many(SOURCE, normalize_bolus, boluses.records)
    basal_doses, rejected_basal = normalize_many(SOURCE, normalize_basal, basals.records)
    doses: list[InsulinDose] = [*bolus_doses, *basal_doses]
    result.processed = len(doses)
    result.rejected = boluses.rejected + basals.rejected + rejected_bolus + rejected_basal

    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records("insulin_doses", doses, "timestamp,type", ConflictPolicy.IGNORE)
    result.inserted = written.inserted
    result.skipped = written.skipped

    logger.info(
        "Insulin: %d bolus + %d basal fetched, inserted %d",
        len(bolus_doses), len(basal_doses), written.inserted,
    )
    result.complete(_problems(boluses, []) + _problems(basals, written.errors))
    return result


async def sync_activity(
    repository: SupabaseRepository,
    client: TidepoolClient,
    start: datetime,
    end: datetime,
    result: ActivitySyncResult,
) -> ActivitySyncResult:
    """Store workouts and overwrite the per-day rollups they produce.

    ``start`` should be a UTC midnight so every summarised day is complete.
    """
    result.stage = SyncStage.FETCHING
    fetched = await client.fetch_physical_activity(start, end)
    if fetched.error and not fetched.records:
        raise fetched.error

    result.stage = SyncStage.NORMALIZING
    sessions: list[RunningSession]
    sessions, rejected = normalize_many(SOURCE, normalize_physical_activity, fetched.records)
    result.processed = len(sessions)
    result.rejected = fetched.rejected + rejected
    summaries = summarize_activity(sessions)

    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records("running_sessions", sessions, "start_time", ConflictPolicy.IGNORE)
    written_summaries = repository.upsert_records(
        "activity_summaries", summaries, "date", ConflictPolicy.OVERWRITE
    )
    result.inserted = written.inserted
    result.skipped = written.skipped
    result.summaries = written_summaries.inserted

    logger.info("Activity: %d workouts inserted, %d daily summaries written", written.inserted, result.summaries)
    result.complete(_problems(fetched, written.errors + written_summaries.errors))
    return result


def _problems(fetched: FetchResult, batch_errors: list) -> list[str]:
    problems = [str(e) for e in batch_errors]
    if fetched.error:
        problems.insert(0, str(fetched.error))
    return problems

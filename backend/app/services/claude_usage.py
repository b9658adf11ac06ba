"""
Claude Code Usage Sync
======================
Pulls the Claude Code usage report from the Anthropic Admin API one day at
a time and stores a daily rollup plus a per-model breakdown.

Both tables are overwritten per day: each sync recomputes the whole day
from the report. A day whose report could not be fetched completely is
not written at all, since a partial day would overwrite a complete one.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

import httpx

from app.models.claude_usage import ClaudeCodeRecord
from app.models.sync import ClaudeSyncResult, SyncStage
from app.services.http import EnvelopePage, FetchResult, paginate, parse_items, parse_page, request_json
from app.services.normalizer import aggregate_claude_day
from app.services.persistence import ConflictPolicy, SupabaseRepository

logger = logging.getLogger(__name__)

ANTHROPIC_API = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
SOURCE = "claude"


class ClaudeUsageClient:
    """Reads ``/v1/organizations/usage_report/claude_code`` with an admin key."""

    def __init__(self, http: httpx.AsyncClient, admin_key: str, limit: int = 1000) -> None:
        self._http = http
        self._admin_key = admin_key
        self._limit = limit

    async def fetch_day(self, day: date) -> FetchResult[ClaudeCodeRecord]:
        """All records for ``day``, following ``next_page`` while ``has_more``."""

        async def fetch_page(cursor: str) -> tuple[list, Optional[str]]:
            params = {"starting_at": day.isoformat(), "limit": self._limit}
            if cursor:
                params["page"] = cursor
            payload = await request_json(
                self._http,
                SOURCE,
                "GET",
                f"{ANTHROPIC_API}/v1/organizations/usage_report/claude_code",
                params=params,
                headers={"x-api-key": self._admin_key, "anthropic-version": ANTHROPIC_VERSION},
            )
            page = parse_page(SOURCE, payload)
            if isinstance(page, EnvelopePage) and page.has_more:
                return page.items, page.next_page
            return page.items, None

        raw = await paginate(SOURCE, fetch_page, "")
        records, rejected = parse_items(SOURCE, ClaudeCodeRecord, raw.records)
        return FetchResult(records=records, error=raw.error, pages=raw.pages, rejected=rejected)


async def sync_claude_usage(
    repository: SupabaseRepository,
    client: ClaudeUsageClient,
    days: Iterable[date],
    result: ClaudeSyncResult,
) -> ClaudeSyncResult:
    problems: list[str] = []

    for day in days:
        result.stage = SyncStage.FETCHING
        fetched = await client.fetch_day(day)
        result.rejected += fetched.rejected
        if fetched.error:
            # One failed day stops the run; later days are not attempted
            raise fetched.error
        if not fetched.records:
            continue

        result.stage = SyncStage.NORMALIZING
        daily, models = aggregate_claude_day(day, fetched.records)

        result.stage = SyncStage.PERSISTING
        written = repository.upsert_records(
            "claude_code_daily", [daily], "date", ConflictPolicy.OVERWRITE
        )
        written_models = repository.upsert_records(
            "claude_code_models", models, "date,model", ConflictPolicy.OVERWRITE
        )
        problems += [str(e) for e in written.errors + written_models.errors]

        result.processed += len(fetched.records)
        result.days += 1
        result.total_sessions += daily.sessions

    logger.info("Claude usage sync: days=%d sessions=%d", result.days, result.total_sessions)
    result.complete(problems)
    return result

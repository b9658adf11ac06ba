"""
Persistence Layer
=================
The only module that writes to Supabase. Every pipeline hands it canonical
rows plus a conflict key and a policy:

- IGNORE     raw source ingestion (glucose, insulin, sessions, events).
             ``INSERT ... ON CONFLICT DO NOTHING``: first write wins, so
             re-running a sync over the same window is harmless.
- OVERWRITE  computed daily aggregates and metadata. Each sync recomputes
             the full day and replaces the stored row.

Writes are split into batches so no statement binds more than
``param_limit`` parameters (batch size = param_limit // columns per row).
A failed batch is logged and counted; the remaining batches still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Protocol, Sequence

from supabase import Client

from app.models.health import HeartRateUpdate, RunningSession, utc_iso
from app.services.errors import PersistenceBatchError

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "settings"
SESSIONS_TABLE = "running_sessions"


class ConflictPolicy(str, Enum):
    IGNORE = "ignore"
    OVERWRITE = "overwrite"


class Row(Protocol):
    def to_row(self) -> dict: ...


@dataclass
class UpsertResult:
    attempted: int = 0
    inserted: int = 0
    failed: int = 0
    errors: list[PersistenceBatchError] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        """Rows not written: duplicates under IGNORE plus failed batches."""
        return self.attempted - self.inserted


@dataclass
class UpdateResult:
    applied: int = 0
    failed: int = 0


def batch_size(param_limit: int, fields_per_row: int) -> int:
    """Rows per statement that keep bound parameters within ``param_limit``."""
    return max(1, param_limit // max(1, fields_per_row))


class SupabaseRepository:
    """Batched upserts and the handful of reads the sync engine needs."""

    def __init__(self, db: Client, param_limit: int = 100) -> None:
        self._db = db
        self._param_limit = param_limit

    # ---- Writes ----------------------------------------------------------

    def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        conflict_key: str,
        policy: ConflictPolicy = ConflictPolicy.IGNORE,
    ) -> UpsertResult:
        result = UpsertResult(attempted=len(rows))
        if not rows:
            return result

        size = batch_size(self._param_limit, len(rows[0]))
        for index, start in enumerate(range(0, len(rows), size)):
            batch = list(rows[start:start + size])
            try:
                result.inserted += self._write_batch(table, batch, conflict_key, policy, index)
            except PersistenceBatchError as exc:
                logger.error("%s (%d rows not written)", exc, len(batch))
                result.failed += len(batch)
                result.errors.append(exc)

        logger.debug(
            "%s upsert: %d attempted, %d written, %d failed",
            table, result.attempted, result.inserted, result.failed,
        )
        return result

    def upsert_records(
        self,
        table: str,
        records: Iterable[Row],
        conflict_key: str,
        policy: ConflictPolicy = ConflictPolicy.IGNORE,
    ) -> UpsertResult:
        return self.upsert(table, [r.to_row() for r in records], conflict_key, policy)

    def _write_batch(
        self,
        table: str,
        batch: list[dict],
        conflict_key: str,
        policy: ConflictPolicy,
        index: int,
    ) -> int:
        try:
            response = (
                self._db.table(table)
                .upsert(
                    batch,
                    on_conflict=conflict_key,
                    ignore_duplicates=policy is ConflictPolicy.IGNORE,
                )
                .execute()
            )
        except Exception as exc:
            raise PersistenceBatchError(table, index, str(exc)) from exc
        # With ignore_duplicates PostgREST only returns the rows it inserted
        return len(response.data or [])

    # ---- Running sessions ------------------------------------------------

    def sessions_missing_heart_rate(self, start: datetime, end: datetime) -> list[RunningSession]:
        """Stored sessions in [start, end] that have no average heart rate."""
        response = (
            self._db.table(SESSIONS_TABLE)
            .select("*")
            .gte("start_time", utc_iso(start))
            .lte("start_time", utc_iso(end))
            .is_("avg_heart_rate", "null")
            .order("start_time")
            .execute()
        )
        return [RunningSession.model_validate(row) for row in response.data or []]

    def apply_heart_rate_updates(self, updates: Sequence[HeartRateUpdate]) -> UpdateResult:
        """Write only the heart-rate columns of each matched session."""
        result = UpdateResult()
        for update in updates:
            try:
                self._db.table(SESSIONS_TABLE).update(update.to_row()).eq("id", update.session_id).execute()
            except Exception as exc:
                logger.error("Heart rate update for session %d failed: %s", update.session_id, exc)
                result.failed += 1
                continue
            result.applied += 1
        return result

    # ---- Key/value settings ----------------------------------------------

    def get_setting(self, key: str) -> Optional[str]:
        response = (
            self._db.table(SETTINGS_TABLE)
            .select("value")
            .eq("key", key)
            .maybe_single()
            .execute()
        )
        # maybe_single() yields no response object at all when the row is absent
        if response is None or not response.data:
            return None
        return response.data["value"]

    def save_setting(self, key: str, value: str) -> None:
        """Overwrite one key. Errors propagate to the caller."""
        self._db.table(SETTINGS_TABLE).upsert(
            {"key": key, "value": value},
            on_conflict="key",
        ).execute()

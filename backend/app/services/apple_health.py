"""
Apple Health Ingest
===================
Stores the payload pushed by the iOS Shortcuts export.

Every section is upserted with OVERWRITE: the phone re-exports the same
days as they fill in, so the latest push for a day is the one we keep.
After the sections, the ``last_sync`` sync-state row records the payload's
own timestamp.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel

from app.models.apple_health import AppleHealthSyncPayload, HeartRateDailyPayload
from app.models.health import utc_iso
from app.services.persistence import ConflictPolicy, SupabaseRepository

logger = logging.getLogger(__name__)

# Readings above this are watch artefacts (measured mid-workout), not resting
RESTING_HR_CAP = 80

SYNC_STATE_TABLE = "ah_sync_state"

# (payload attribute, result key, table, conflict key)
_SECTIONS = (
    ("daily_activity", "dailyActivity", "ah_daily_activity", "date"),
    ("workouts", "workouts", "ah_workouts", "workout_type,start_time"),
    ("heart_rate_daily", "heartRateDaily", "ah_heart_rate_daily", "date"),
    ("vitals", "vitals", "ah_vitals", "type,date"),
    ("sleep_sessions", "sleepSessions", "ah_sleep_sessions", "date"),
    ("body_measurements", "bodyMeasurements", "ah_body_measurements", "type,date"),
)


def _heart_rate_row(item: HeartRateDailyPayload) -> dict:
    row = item.model_dump(mode="json")
    if item.resting_hr is not None and item.resting_hr > RESTING_HR_CAP:
        row["resting_hr"] = None
    return row


def _default_row(item: BaseModel) -> dict:
    row = item.model_dump(mode="json")
    # datetimes are stored as UTC so the workout unique key compares cleanly
    for key in row:
        original = getattr(item, key, None)
        if isinstance(original, datetime):
            row[key] = utc_iso(original)
    return row


_ROW_BUILDERS: dict[str, Callable[[BaseModel], dict]] = {
    "heart_rate_daily": _heart_rate_row,
}


def ingest_apple_health(
    repository: SupabaseRepository,
    payload: AppleHealthSyncPayload,
    now: Optional[datetime] = None,
) -> tuple[dict[str, int], int]:
    """Write every non-empty section. Returns (rows per section, failed rows)."""
    updated_at = utc_iso(now or datetime.now(timezone.utc))
    written: dict[str, int] = {}
    failed = 0

    for attr, key, table, conflict_key in _SECTIONS:
        items = getattr(payload, attr)
        if not items:
            continue
        build = _ROW_BUILDERS.get(attr, _default_row)
        rows = [{**build(item), "updated_at": updated_at} for item in items]
        result = repository.upsert(table, rows, conflict_key, ConflictPolicy.OVERWRITE)
        written[key] = result.inserted
        failed += result.failed

    if failed:
        logger.warning("Apple Health ingest: %d rows failed, last_sync not advanced", failed)
    else:
        repository.upsert(
            SYNC_STATE_TABLE,
            [{"key": "last_sync", "value": utc_iso(payload.sync_timestamp)}],
            "key",
            ConflictPolicy.OVERWRITE,
        )

    logger.info("Apple Health ingest: %s (%d rows failed)", written or "nothing", failed)
    return written, failed

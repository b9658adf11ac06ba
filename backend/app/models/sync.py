"""
Sync Result Schemas
===================
What each source sync reports back, and the responses of the trigger
endpoints.

A source result always exists, even when the sync failed: the error is
carried in ``error`` and ``status`` rather than raised, so one broken
upstream never hides the results of its siblings.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class SyncStage(str, Enum):
    """Where a source sync is (or where it stopped)."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


class SyncStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"  # completed, upstream had nothing in the window
    PARTIAL = "partial"  # completed with some data but a fetch or write failed
    FAILED = "failed"
    SKIPPED = "skipped"  # filtered out by the trigger's type parameter


class SourceResult(BaseModel):
    """Fields every source reports."""

    status: SyncStatus = SyncStatus.OK
    stage: SyncStage = SyncStage.IDLE
    # Stage that was running when the sync failed
    failed_at: Optional[SyncStage] = None
    processed: int = 0
    rejected: int = 0
    error: Optional[str] = None

    def complete(self, problems: Optional[list[str]] = None) -> None:
        """Mark DONE. Non-fatal problems (a failed page or batch) make it PARTIAL."""
        self.stage = SyncStage.DONE
        if problems:
            self.status = SyncStatus.PARTIAL
            self.error = "; ".join(problems)
        elif self.processed == 0:
            self.status = SyncStatus.EMPTY
        else:
            self.status = SyncStatus.OK

    def fail(self, reason: str) -> None:
        self.failed_at = self.stage
        self.stage = SyncStage.FAILED
        self.status = SyncStatus.FAILED
        self.error = reason

    def skip(self) -> None:
        self.status = SyncStatus.SKIPPED


class IngestResult(SourceResult):
    """Raw ingestion: ``skipped`` counts duplicates and failed batches."""

    inserted: int = 0
    skipped: int = 0


class ActivitySyncResult(IngestResult):
    summaries: int = 0


class StravaSyncResult(SourceResult):
    matched: int = 0
    unmatched: int = 0
    # Sessions matched by more than one candidate in the same run
    reclaimed: int = 0


class GitHubSyncResult(SourceResult):
    contributions: int = 0
    repos: int = 0
    events: int = 0
    languages: int = 0


class ClaudeSyncResult(SourceResult):
    days: int = 0
    total_sessions: int = 0


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class HealthSyncResponse(BaseModel):
    glucose: IngestResult
    insulin: IngestResult
    activity: ActivitySyncResult
    strava: StravaSyncResult


class CodeSyncResponse(BaseModel):
    github: GitHubSyncResult
    claude: ClaudeSyncResult

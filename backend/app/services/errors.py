"""
Sync Errors
===========
Failure taxonomy shared by every pipeline. The orchestrator catches all of
these at the source-sync boundary and turns them into the ``error`` field of
that source's result, so none of them ever reaches the HTTP layer.
"""

from __future__ import annotations

# Upstream bodies can be whole HTML error pages; keep logs readable
_BODY_LIMIT = 200


class SyncError(Exception):
    """Base class for every sync-layer failure."""


class AuthError(SyncError):
    """Credential missing or rejected upstream. Not retried within a cycle."""

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source} auth failed: {message}")


class FetchError(SyncError):
    """Non-2xx (or unreachable) upstream response while fetching data."""

    def __init__(self, source: str, status_code: int | None, body: str) -> None:
        self.source = source
        self.status_code = status_code
        self.body = truncate(body)
        status = status_code if status_code is not None else "network"
        super().__init__(f"{source} fetch failed ({status}): {self.body}")


class PersistenceBatchError(SyncError):
    """One write batch failed. Remaining batches still run."""

    def __init__(self, table: str, batch_index: int, reason: str) -> None:
        self.table = table
        self.batch_index = batch_index
        self.reason = reason
        super().__init__(f"{table} batch {batch_index} failed: {reason}")


class ValidationError(SyncError):
    """Upstream payload did not have the expected shape."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source} payload invalid: {reason}")


def truncate(text: str, limit: int = _BODY_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."

"""
Upstream HTTP Helpers
=====================
Shared plumbing for the source fetchers:

- request_json(): one request, non-2xx → FetchError, non-JSON → ValidationError
- parse_page(): explicit discrimination of the two response shapes we see
  (bare JSON array vs. ``{"data": [...], "has_more": ...}`` envelope)
- paginate(): walk pages until exhaustion, keeping what was collected when
  a later page fails
- parse_items(): validate raw items one by one so a single malformed record
  is dropped and counted instead of failing the batch
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.config import Settings
from app.services.errors import FetchError, SyncError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

USER_AGENT = "healthsync/0.1"


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArrayPage:
    """A bare JSON array. An empty array means the upstream is exhausted."""

    items: list


@dataclass(frozen=True)
class EnvelopePage:
    """An object wrapping the items with an explicit continuation flag."""

    items: list
    has_more: bool = False
    next_page: Optional[str] = None


Page = Union[ArrayPage, EnvelopePage]


def parse_page(source: str, payload: Any) -> Page:
    """Classify a decoded JSON body as one of the two known page shapes."""
    if isinstance(payload, list):
        return ArrayPage(items=payload)
    if isinstance(payload, dict):
        data = payload.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise ValidationError(source, f"'data' is {type(data).__name__}, expected list")
        next_page = payload.get("next_page")
        return EnvelopePage(
            items=data,
            has_more=bool(payload.get("has_more")) and bool(next_page),
            next_page=next_page,
        )
    raise ValidationError(source, f"unexpected response type {type(payload).__name__}")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """One client per sync invocation; the timeout bounds every request."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": USER_AGENT},
    )


async def request_json(
    client: httpx.AsyncClient,
    source: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> Any:
    """Send one request and decode the JSON body.

    Raises FetchError on transport failure or non-2xx status, and
    ValidationError when a 2xx body is not JSON.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise FetchError(source, None, str(exc) or type(exc).__name__) from exc

    if not response.is_success:
        raise FetchError(source, response.status_code, response.text)

    try:
        return response.json()
    except ValueError as exc:
        raise ValidationError(source, "response body is not JSON") from exc


# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------

@dataclass
class FetchResult(Generic[T]):
    """Records gathered by a fetcher, plus the error that stopped it (if any)."""

    records: list[T] = field(default_factory=list)
    error: Optional[SyncError] = None
    pages: int = 0
    rejected: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


PageFetcher = Callable[[Any], Awaitable[tuple[list, Any]]]


async def paginate(
    source: str,
    fetch_page: PageFetcher,
    first_cursor: Any,
    delay_seconds: float = 0.0,
) -> FetchResult[Any]:
    """Call ``fetch_page(cursor)`` until it returns a ``None`` next cursor.

    ``fetch_page`` returns ``(items, next_cursor)``. When page N fails the
    loop stops and the items from pages 1..N-1 are returned together with
    the error.
    """
    result: FetchResult[Any] = FetchResult()
    cursor = first_cursor
    while cursor is not None:
        if result.pages and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        try:
            items, cursor = await fetch_page(cursor)
        except SyncError as exc:
            logger.error(
                "%s paging stopped at page %d with %d records kept: %s",
                source, result.pages + 1, len(result.records), exc,
            )
            result.error = exc
            break
        result.pages += 1
        result.records.extend(items)
    return result


def parse_items(source: str, model: type[M], items: list) -> tuple[list[M], int]:
    """Validate raw dicts into ``model``. Returns (parsed, rejected_count)."""
    parsed: list[M] = []
    rejected = 0
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except PydanticValidationError as exc:
            rejected += 1
            logger.warning(
                "%s: dropping malformed %s (%d errors)",
                source, model.__name__, exc.error_count(),
            )
    return parsed, rejected

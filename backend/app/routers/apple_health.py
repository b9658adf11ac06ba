"""
Apple Health Ingest Router
==========================
POST /api/v1/apple-health/sync: payload pushed by the iOS Shortcuts export.

The shortcut authenticates with a shared secret in ``x-sync-secret`` and may
deflate the body (``Content-Encoding: deflate``) to stay under the Shortcuts
request size limit.
"""

from __future__ import annotations

import json
import logging
import secrets
import zlib
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from app.dependencies import AppSettings, Repository
from app.models.apple_health import AppleHealthSyncPayload, AppleHealthSyncResponse
from app.services.apple_health import ingest_apple_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/apple-health", tags=["apple-health"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _check_secret(expected: str, provided: Optional[str]) -> None:
    """Raises HTTPException 401 unless the shared secret matches."""
    if not expected or not provided or not secrets.compare_digest(expected, provided):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unauthorized", "code": "auth_invalid"},
        )


async def _read_json(request: Request, content_encoding: Optional[str]) -> object:
    body = await request.body()
    try:
        if content_encoding == "deflate":
            body = zlib.decompress(body)
        return json.loads(body)
    except (zlib.error, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid JSON body", "code": "invalid_json"},
        ) from exc


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post(
    "/sync",
    response_model=AppleHealthSyncResponse,
    status_code=status.HTTP_200_OK,
    summary="Ingest an Apple Health export",
    responses={
        400: {"description": "Invalid JSON or failed validation"},
        401: {"description": "Missing or wrong x-sync-secret"},
        503: {"description": "Storage unavailable"},
    },
)
async def sync_apple_health(
    request: Request,
    settings: AppSettings,
    repository: Repository,
    x_sync_secret: Optional[str] = Header(default=None),
    content_encoding: Optional[str] = Header(default=None),
) -> AppleHealthSyncResponse:
    _check_secret(settings.apple_health_sync_secret, x_sync_secret)

    raw = await _read_json(request, content_encoding)
    try:
        payload = AppleHealthSyncPayload.model_validate(raw)
    except PydanticValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Validation failed",
                "code": "validation_failed",
                "issues": [
                    {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ],
            },
        ) from exc

    written, failed = ingest_apple_health(repository, payload)
    return AppleHealthSyncResponse(result=written, failed=failed)

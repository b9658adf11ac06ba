"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from app.config import Settings
from app.services.persistence import SupabaseRepository


def get_app_settings(request: Request) -> Settings:
    """The Settings built once in ``create_app()``."""
    return request.app.state.settings


def get_repository(request: Request) -> SupabaseRepository:
    repository: Optional[SupabaseRepository] = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Storage unavailable", "code": "storage_unavailable"},
        )
    return repository


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Repository = Annotated[SupabaseRepository, Depends(get_repository)]

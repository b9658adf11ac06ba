"""
Healthsync API
==============
FastAPI application entry point. Mount routers here.

Run locally:
    uvicorn app.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, get_settings
from app.db.supabase import create_supabase_client
from app.routers import apple_health, sync
from app.services.http import build_http_client
from app.services.orchestrator import SyncOrchestrator
from app.services.persistence import SupabaseRepository
from app.services.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def _scheduled_sync(app: FastAPI):
    async def run() -> None:
        settings: Settings = app.state.settings
        repository: Optional[SupabaseRepository] = app.state.repository
        if repository is None:
            logger.warning("Scheduled sync skipped: storage unavailable")
            return
        async with build_http_client(settings) as http:
            orchestrator = SyncOrchestrator(settings, repository, http)
            await orchestrator.run()
            await orchestrator.run_code()

    return run


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    scheduler: Optional[SyncScheduler] = None
    if settings.sync_interval_minutes > 0:
        scheduler = SyncScheduler(_scheduled_sync(app), settings.sync_interval_minutes * 60)
        scheduler.start()
    yield
    if scheduler is not None:
        await scheduler.stop()


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[SupabaseRepository] = None,
) -> FastAPI:
    """Build the app. Tests pass their own settings and repository."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if repository is None:
        db = create_supabase_client(settings)
        if db is not None:
            repository = SupabaseRepository(db, param_limit=settings.storage_param_limit)

    app = FastAPI(
        title="Healthsync API",
        description="Health and activity sync engine: Tidepool, Strava, GitHub, Claude Code, Apple Health",
        version="0.1.0",
        docs_url="/api/docs" if settings.environment != "production" else None,
        redoc_url="/api/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sync.router)
    app.include_router(apple_health.router)

    @app.get("/api/v1/health")
    async def health_check() -> dict:
        return {"status": "ok", "service": "healthsync-api", "storage": repository is not None}

    return app


app = create_app()

"""
Periodic Sync Scheduler
=======================
Runs the health and code syncs on a fixed interval inside the API process.

Started from the app lifespan when ``sync_interval_minutes > 0``. With the
interval at 0 nothing runs here and an external cron is expected to POST
to ``/api/v1/sync`` instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Calls ``job`` every ``interval_seconds`` until stopped.

    A failing run is logged and the loop carries on; the next tick gets a
    fresh attempt.
    """

    def __init__(self, job: Callable[[], Awaitable[object]], interval_seconds: float) -> None:
        self._job = job
        self._interval = interval_seconds
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("Sync scheduler started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("Sync scheduler stopped after %d runs", self.runs)

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self._job()
            except Exception:
                logger.exception("Scheduled sync failed")
            self.runs += 1
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue

"""Background scheduler that expires lapsed access grants."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from medilocker.config import settings
from medilocker.database import get_db_context
from medilocker.services.access.engine import AccessGrantEngine
from medilocker.services.access.repository import SQLAccessRequestRepository

logger = logging.getLogger("medilocker.access_sweep")

EngineFactory = Callable[[], AbstractAsyncContextManager[AccessGrantEngine]]


@asynccontextmanager
async def sql_engine_scope() -> AsyncIterator[AccessGrantEngine]:
    async with get_db_context() as db:
        yield AccessGrantEngine(SQLAccessRequestRepository(db))


class AccessSweepScheduler:
    """Polling loop that moves approvals past ``expires_at`` to ``expired``.

    Reads already treat lapsed approvals as absent, so the sweep only keeps
    stored statuses honest between requests.
    """

    def __init__(self, engine_factory: EngineFactory | None = None) -> None:
        self._engine_factory = engine_factory or sql_engine_scope
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the loop if enabled."""
        if not settings.access_sweep_enabled:
            logger.info("Access sweep scheduler disabled by configuration")
            return
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="access-sweep-scheduler")
        logger.info(
            "Access sweep scheduler started (interval=%ss)",
            settings.access_sweep_interval_seconds,
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Access sweep scheduler stopped")

    async def run_once(self) -> int:
        """Run one sweep (used by the loop and tests). Returns the expired count."""
        async with self._engine_factory() as engine:
            return await engine.sweep_expired()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            started_at = asyncio.get_running_loop().time()
            try:
                await self.run_once()
            except Exception:
                logger.exception("Access sweep cycle failed")

            elapsed = asyncio.get_running_loop().time() - started_at
            sleep_seconds = max(1, settings.access_sweep_interval_seconds - int(elapsed))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_seconds)
            except TimeoutError:
                continue


_scheduler_instance: AccessSweepScheduler | None = None


def get_access_sweep_scheduler() -> AccessSweepScheduler:
    """Get singleton access sweep scheduler instance."""
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = AccessSweepScheduler()
    return _scheduler_instance

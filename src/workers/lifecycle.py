"""
Background Lifecycle Worker
===========================

Runs every ``LIFECYCLE_INTERVAL_SECONDS`` (default 300 s) and executes the
``complete-trips`` job: auto-complete finished trips, then expire stale
pending requests.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process runs a cycle at a
  time.  A cycle that cannot take the lock is skipped, not queued.
* The jobs themselves are conditional set-updates, so a cycle that dies
  half-way is simply finished by the next one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.config import settings
from src.domain.enums import LifecycleJob
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock, get_redis
from src.services.lifecycle import LifecycleJobResult, LifecycleJobService

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_lifecycle_loop() -> None:
    global _task, _stop_event
    if not settings.lifecycle_worker_enabled:
        logger.info("Lifecycle worker disabled")
        return
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Lifecycle worker started (interval=%ds)", settings.lifecycle_interval_seconds
    )


async def stop_lifecycle_loop() -> None:
    global _task
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
        _task = None
        logger.info("Lifecycle worker stopped")


async def run_lifecycle_cycle() -> Optional[LifecycleJobResult]:
    """Execute one cycle.  Returns ``None`` if another worker holds the lock."""
    lock = DistributedLock(
        get_redis(),
        "lifecycle_jobs",
        ttl_seconds=max(60, settings.lifecycle_interval_seconds),
    )
    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping cycle")
        return None

    try:
        async with async_session_factory() as session:
            return await LifecycleJobService(session).run(
                LifecycleJob.COMPLETE_TRIPS, settings.pending_ttl_hours
            )
    finally:
        await lock.release()


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_lifecycle_cycle()
        except Exception:
            logger.exception("Unhandled error in lifecycle cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.lifecycle_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle

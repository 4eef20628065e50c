"""
Consolidation Scheduler
=======================
Single-slot, coalescing background job.

Bursts of ingestion should trigger one consolidation pass (decay, type
merging, cleanup, persistence) shortly after things settle, not one pass
per event. ``schedule()`` starts a delayed task when none is outstanding
and is a no-op otherwise. The job runs under a timeout; any failure is
logged and the slot is freed for the next request.

Public API:
    scheduler = ConsolidationScheduler(job, delay_seconds=5, timeout_seconds=60)
    scheduler.schedule()      -> True if a new run was queued
    scheduler.pending         -> bool
    await scheduler.wait()    # until the outstanding run finishes
    await scheduler.cancel()
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

Job = Callable[[], Awaitable[Any]]


class ConsolidationScheduler:
    def __init__(
        self,
        job: Job,
        delay_seconds: float = 5.0,
        timeout_seconds: float = 60.0,
        enabled: bool = True,
    ):
        self._job = job
        self._delay = delay_seconds
        self._timeout = timeout_seconds
        self._enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self.stats: Dict[str, int] = {
            "scheduled": 0,
            "coalesced": 0,
            "completed": 0,
            "errors": 0,
            "timeouts": 0,
        }

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    # ---- Scheduling ------------------------------------------------ #

    def schedule(self) -> bool:
        """
        Queue a consolidation run unless one is already outstanding.

        Must be called from inside a running event loop.
        """
        if not self._enabled:
            return False
        if self.pending:
            self.stats["coalesced"] += 1
            return False
        self._task = asyncio.create_task(self._run(), name="graph_consolidation")
        self.stats["scheduled"] += 1
        logger.debug(f"[Consolidation] Scheduled in {self._delay}s")
        return True

    async def wait(self) -> None:
        """Wait for the outstanding run, if any."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel(self) -> None:
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    # ---- Run ------------------------------------------------------- #

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self._delay)
            await asyncio.wait_for(self._job(), timeout=self._timeout)
            self.stats["completed"] += 1
            logger.debug("[Consolidation] Run completed")
        except asyncio.TimeoutError:
            self.stats["timeouts"] += 1
            logger.warning(f"[Consolidation] Run exceeded {self._timeout}s and was abandoned")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.stats["errors"] += 1
            logger.error(f"[Consolidation] Run failed: {exc}")

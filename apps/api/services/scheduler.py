"""Periodic sync trigger with single-flight protection."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config import settings
from services.sync import BatchResult, sync_all_connections

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Runs the batch sync every `interval_minutes`.

    At most one batch runs at a time; a tick that finds a batch in flight is
    skipped rather than queued.
    """

    def __init__(
        self,
        interval_minutes: Optional[int] = None,
        batch_runner: Optional[Callable[[], Awaitable[BatchResult]]] = None,
    ):
        minutes = settings.SYNC_INTERVAL_MINUTES if interval_minutes is None else interval_minutes
        self.interval_minutes = max(int(minutes), 0)
        self._batch_runner = batch_runner or sync_all_connections
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> Optional[BatchResult]:
        """Run one batch. Returns None when another batch is already in progress."""
        if self._lock.locked():
            logger.info("Sync batch already in progress, skipping tick")
            return None
        async with self._lock:
            logger.info("Starting scheduled post sync")
            result = await self._batch_runner()
            logger.info(
                "Post sync completed: connections=%s succeeded=%s failed=%s skipped=%s",
                result.connections_count,
                result.succeeded,
                result.failed,
                result.skipped,
            )
            return result

    async def run_forever(self) -> None:
        if self.interval_minutes <= 0:
            return
        while True:
            await asyncio.sleep(self.interval_minutes * 60)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled post sync tick failed")


sync_scheduler = SyncScheduler()

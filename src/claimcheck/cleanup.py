"""Periodic TTL cleanup of offloaded payloads.

Runs PayloadStore.cleanup_expired_blobs on a fixed interval. A failed sweep
is logged and retried at the next interval; it never stops the loop.

Example:
    scheduler = BlobCleanupScheduler(payload_store, interval_minutes=60)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from claimcheck.config import ClientConfiguration
    from claimcheck.storage.payload_store import PayloadStore

logger = logging.getLogger(__name__)


class BlobCleanupScheduler:
    """Interval scheduler for expired payload sweeps."""

    def __init__(self, payload_store: PayloadStore, interval_minutes: float) -> None:
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.payload_store = payload_store
        self.interval_minutes = interval_minutes
        self.last_run: datetime | None = None
        self.last_deleted = 0
        self.runs = 0
        self._running = False
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_configuration(
        cls, config: ClientConfiguration, payload_store: PayloadStore | None
    ) -> BlobCleanupScheduler | None:
        """Build a scheduler, or None when scheduled cleanup is disabled."""
        if config.ttl_cleanup_interval_minutes <= 0 or payload_store is None:
            return None
        return cls(payload_store, config.ttl_cleanup_interval_minutes)

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start sweeping in a background task."""
        if self._running:
            return
        self._running = True
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Payload cleanup scheduled every {self.interval_minutes} minute(s)")

    async def stop(self) -> None:
        """Stop the scheduler, cancelling any pending wait."""
        self._running = False
        self._stopped.set()
        if self._task is not None:
            task, self._task = self._task, None
            await asyncio.gather(task, return_exceptions=True)
        logger.info("Payload cleanup scheduler stopped")

    async def run(self) -> None:
        """Run the scheduler until stopped."""
        await self.start()
        task = self._task
        try:
            if task is not None:
                await task
        finally:
            await self.stop()

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
            if not self._running:
                break

            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Payload cleanup failed: {e}")

    async def run_once(self) -> int:
        """Run one sweep immediately.

        Returns:
            Number of payloads deleted
        """
        deleted = await self.payload_store.cleanup_expired_blobs()
        self.runs += 1
        self.last_run = datetime.now(UTC)
        self.last_deleted = deleted
        return deleted

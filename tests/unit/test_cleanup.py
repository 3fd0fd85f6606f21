"""Tests for the TTL cleanup scheduler."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from claimcheck.cleanup import BlobCleanupScheduler
from claimcheck.storage.memory import InMemoryObjectStore
from claimcheck.storage.payload_store import PayloadStore

CONTAINER = "large-messages"


class TestBlobCleanupScheduler:
    """Tests for BlobCleanupScheduler."""

    def test_interval_must_be_positive(self, payload_store: PayloadStore) -> None:
        with pytest.raises(ValueError):
            BlobCleanupScheduler(payload_store, 0)

    def test_from_configuration_disabled(self, make_config, payload_store: PayloadStore) -> None:  # type: ignore[no-untyped-def]
        assert BlobCleanupScheduler.from_configuration(make_config(), payload_store) is None
        config = make_config(ttl_cleanup_interval_minutes=5)
        assert BlobCleanupScheduler.from_configuration(config, None) is None

    def test_from_configuration(self, make_config, payload_store: PayloadStore) -> None:  # type: ignore[no-untyped-def]
        scheduler = BlobCleanupScheduler.from_configuration(
            make_config(ttl_cleanup_interval_minutes=5), payload_store
        )

        assert scheduler is not None
        assert scheduler.interval_seconds == 300.0

    @pytest.mark.asyncio
    async def test_run_once(
        self, payload_store: PayloadStore, object_store: InMemoryObjectStore
    ) -> None:
        past = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        await object_store.put(CONTAINER, "old", b"x", metadata={"expiresAt": past})
        scheduler = BlobCleanupScheduler(payload_store, 60)

        assert await scheduler.run_once() == 1

        assert scheduler.runs == 1
        assert scheduler.last_deleted == 1
        assert scheduler.last_run is not None

    @pytest.mark.asyncio
    async def test_loop_sweeps_repeatedly(self) -> None:
        store = MagicMock()
        store.cleanup_expired_blobs = AsyncMock(return_value=0)
        scheduler = BlobCleanupScheduler(store, interval_minutes=0.0005)

        await scheduler.start()
        for _ in range(200):
            if scheduler.runs >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert scheduler.runs >= 2
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_failed_sweep_does_not_stop_loop(self) -> None:
        store = MagicMock()
        store.cleanup_expired_blobs = AsyncMock(side_effect=[RuntimeError("boom"), 3, 0, 0])
        scheduler = BlobCleanupScheduler(store, interval_minutes=0.0005)

        await scheduler.start()
        for _ in range(200):
            if scheduler.runs >= 1:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert store.cleanup_expired_blobs.await_count >= 2
        assert scheduler.runs >= 1

    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self, payload_store: PayloadStore) -> None:
        scheduler = BlobCleanupScheduler(payload_store, interval_minutes=60)

        await scheduler.start()
        await asyncio.wait_for(scheduler.stop(), timeout=1.0)

        assert scheduler.runs == 0

"""Tests for RetentionManager over the in-memory stores."""

import asyncio

import pytest

from logbridge.adapters.storage.in_memory import (
    InMemoryFingerprintStore,
    InMemoryRecordStorage,
)
from logbridge.core.config import DAY_MS, HOUR_MS, IngestionConfig
from logbridge.core.exceptions import StorageTransactionError
from logbridge.core.retention import CleanupMode, RetentionManager

from tests.helpers import START_MS, FakeClock, make_record


class CountingRecordStorage(InMemoryRecordStorage):
    """Records the size of every delete transaction."""

    def __init__(self) -> None:
        super().__init__()
        self.delete_sizes: list[int] = []

    async def delete_durable(self, ids) -> int:
        self.delete_sizes.append(len(ids))
        return await super().delete_durable(ids)


class PoisonedRecordStorage(InMemoryRecordStorage):
    """Fails any delete transaction that includes the poisoned id."""

    def __init__(self, poisoned: str) -> None:
        super().__init__()
        self.poisoned = poisoned

    async def delete_durable(self, ids) -> int:
        if self.poisoned in ids:
            raise StorageTransactionError("row locked")
        return await super().delete_durable(ids)


async def fill(records, count: int, received_at: int) -> None:
    for i in range(count):
        record = make_record(f"r{i:05d}", received_at=received_at)
        await records.write(record, received_at + HOUR_MS)


class TestCleanup:
    """Tests for RetentionManager.cleanup()."""

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_force_cleanup_in_bounded_batches(self) -> None:
        """10000 records at batch size 100 are deleted in 100 transactions."""
        records = CountingRecordStorage()
        await fill(records, 10_000, START_MS)
        manager = RetentionManager(records, clock=FakeClock())

        result = await manager.cleanup(CleanupMode.FORCE, batch_size=100)

        assert result.scanned == 10_000
        assert result.deleted == 10_000
        assert result.failed == 0
        assert result.batches == 100
        assert max(records.delete_sizes) <= 100
        assert await records.count_durable() == 0

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_safe_cleanup_of_aged_records_in_bounded_batches(self) -> None:
        """10000 records past retention are deleted 100 per transaction."""
        records = CountingRecordStorage()
        await fill(records, 10_000, START_MS)
        manager = RetentionManager(records, clock=FakeClock(START_MS + 31 * DAY_MS))

        result = await manager.cleanup(CleanupMode.SAFE, batch_size=100)

        assert result.mode == "safe"
        assert result.scanned == 10_000
        assert result.deleted == 10_000
        assert result.failed == 0
        assert result.batches == 100
        assert max(records.delete_sizes) <= 100
        assert await records.count_durable() == 0

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_safe_cleanup_keeps_recent_records(self) -> None:
        clock = FakeClock(START_MS + 40 * DAY_MS)
        records = InMemoryRecordStorage()
        await fill(records, 5, START_MS)
        await records.write(
            make_record("fresh", received_at=clock()), clock() + HOUR_MS
        )
        manager = RetentionManager(records, clock=clock)

        result = await manager.cleanup("safe", batch_size=2)

        assert result.deleted == 5
        assert result.batches == 3
        remaining = await records.scan_durable(None, "", 10)
        assert [s.record.id for s in remaining] == ["fresh"]

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_persistently_failing_record_is_skipped(self) -> None:
        records = PoisonedRecordStorage("r00002")
        await fill(records, 5, START_MS)
        manager = RetentionManager(
            records, config=IngestionConfig(storage_retry_attempts=1), clock=FakeClock()
        )

        result = await manager.cleanup(CleanupMode.FORCE, batch_size=300)

        assert result.deleted == 4
        assert result.failed == 1
        assert await records.count_durable() == 1

    @pytest.mark.tier(1)
    @pytest.mark.core
    @pytest.mark.parametrize("batch_size", [0, -1, 301])
    async def test_batch_size_out_of_range(self, batch_size: int) -> None:
        manager = RetentionManager(InMemoryRecordStorage(), clock=FakeClock())

        with pytest.raises(ValueError, match="batch_size"):
            await manager.cleanup(CleanupMode.SAFE, batch_size=batch_size)

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_unknown_mode_rejected(self) -> None:
        manager = RetentionManager(InMemoryRecordStorage(), clock=FakeClock())

        with pytest.raises(ValueError):
            await manager.cleanup("everything")

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_empty_store(self) -> None:
        manager = RetentionManager(InMemoryRecordStorage(), clock=FakeClock())

        result = await manager.cleanup(CleanupMode.FORCE)

        assert result.scanned == 0
        assert result.batches == 0


class TestExpiry:
    """Tests for short-lived expiry."""

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_expire_short_lived_keeps_durable(self) -> None:
        clock = FakeClock()
        records = InMemoryRecordStorage()
        fingerprints = InMemoryFingerprintStore()
        await fill(records, 250, clock())
        await fingerprints.check_and_record("fp", clock(), 1000)
        manager = RetentionManager(records, fingerprints, clock=clock)
        clock.advance(HOUR_MS)

        expired = await manager.expire_short_lived()

        assert expired == 250
        assert await records.count_short_lived() == 0
        assert await records.count_durable() == 250
        assert await fingerprints.get("fp") is None

    @pytest.mark.tier(1)
    @pytest.mark.core
    async def test_run_periodic_stops_on_event(self) -> None:
        clock = FakeClock()
        records = InMemoryRecordStorage()
        await fill(records, 3, clock())
        clock.advance(HOUR_MS)
        manager = RetentionManager(records, clock=clock)
        stop = asyncio.Event()

        task = asyncio.create_task(manager.run_periodic(0.01, stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert await records.count_short_lived() == 0

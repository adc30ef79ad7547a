"""Retention: expiry of short-lived records and bounded durable cleanup."""

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from logbridge.core.clock import Clock, now_ms
from logbridge.core.config import MAX_BATCH_SIZE, MIN_BATCH_SIZE, IngestionConfig
from logbridge.core.exceptions import StorageTransactionError
from logbridge.core.logs import log_exception
from logbridge.core.models import CleanupResult, StoredRecord
from logbridge.core.ports import FingerprintStorePort, RecordStoragePort

logger = logging.getLogger(__name__)


class CleanupMode(str, Enum):
    """SAFE deletes only aged durable records; FORCE deletes every durable record."""

    SAFE = "safe"
    FORCE = "force"


class RetentionManager:
    """Sole deleter of stored records.

    All deletions run in bounded batches so a single transaction never
    exceeds the backend's size or time limits. Individual failures are
    retried a bounded number of times, then logged and skipped.
    """

    def __init__(
        self,
        records: RecordStoragePort,
        fingerprints: FingerprintStorePort | None = None,
        config: IngestionConfig | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._records = records
        self._fingerprints = fingerprints
        self._config = config or IngestionConfig()
        self._clock = clock

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._config.storage_retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(StorageTransactionError),
            reraise=True,
        )

    async def expire_short_lived(self) -> int:
        """Delete every short-lived record and fingerprint past its expiry.

        Returns:
            Number of short-lived records deleted.
        """
        now = self._clock()
        batch_size = self._config.cleanup_batch_size
        total = 0
        while True:
            deleted = await self._records.delete_expired_short_lived(now, batch_size)
            total += deleted
            if deleted < batch_size:
                break
        if self._fingerprints is not None:
            while await self._fingerprints.purge_expired(now, batch_size) >= batch_size:
                pass
        if total:
            logger.info("Expired %d short-lived records", total)
        return total

    async def cleanup(
        self,
        mode: CleanupMode | str = CleanupMode.SAFE,
        batch_size: int | None = None,
    ) -> CleanupResult:
        """Delete durable records in bounded batches until the scan is exhausted.

        Args:
            mode: ``safe`` deletes durable records older than the retention
                period plus expired short-lived leftovers; ``force`` deletes
                every durable record regardless of age.
            batch_size: Records per transaction, 1 to 300.

        Raises:
            ValueError: If ``mode`` or ``batch_size`` is invalid.
        """
        mode = CleanupMode(mode)
        if batch_size is None:
            batch_size = self._config.cleanup_batch_size
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}"
            )

        now = self._clock()
        before: int | None = now - self._config.durable_retention_ms
        if mode is CleanupMode.FORCE:
            before = None
            logger.warning("Force cleanup requested: deleting all durable records")

        scanned = deleted = failed = batches = 0
        cursor = ""
        while True:
            batch = await self._scan(before, cursor, batch_size)
            if not batch:
                break
            batches += 1
            scanned += len(batch)
            cursor = batch[-1].record.id
            ok, bad = await self._delete_batch([item.record.id for item in batch])
            deleted += ok
            failed += bad
            if len(batch) < batch_size:
                break

        short_lived_deleted = await self.expire_short_lived()
        logger.info(
            "Cleanup (%s) finished: scanned=%d, deleted=%d, failed=%d, batches=%d",
            mode.value,
            scanned,
            deleted,
            failed,
            batches,
        )
        return CleanupResult(
            mode=mode.value,
            scanned=scanned,
            deleted=deleted,
            failed=failed,
            batches=batches,
            short_lived_deleted=short_lived_deleted,
        )

    async def _scan(
        self, before: int | None, cursor: str, batch_size: int
    ) -> list[StoredRecord]:
        async for attempt in self._retrying():
            with attempt:
                return await self._records.scan_durable(before, cursor, batch_size)
        return []

    async def _delete_batch(self, ids: Sequence[str]) -> tuple[int, int]:
        """Delete one batch; on persistent failure fall back to one id at a time."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await self._records.delete_durable(ids), 0
        except StorageTransactionError as exc:
            logger.warning(
                "Batch delete of %d records failed, retrying individually: %s",
                len(ids),
                exc,
            )

        deleted = failed = 0
        for record_id in ids:
            try:
                async for attempt in self._retrying():
                    with attempt:
                        deleted += await self._records.delete_durable([record_id])
            except StorageTransactionError:
                logger.warning("Skipping record %s after repeated failures", record_id)
                failed += 1
        return deleted, failed

    async def run_periodic(self, interval_s: float, stop: asyncio.Event) -> None:
        """Sweep expired records every ``interval_s`` until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.expire_short_lived()
            except Exception:
                log_exception("Scheduled short-lived expiry failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_s)
            except asyncio.TimeoutError:
                continue

"""Port interfaces for storage adapters.

These protocols define the contracts that storage adapters must implement.
The core domain depends only on these interfaces, not concrete
implementations. Every mutation of a shared, contended resource is a
single atomic conditional operation in the adapter; the core never issues
a read followed by a dependent write.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from logbridge.core.models import (
    FingerprintEntry,
    LogRecord,
    LogStats,
    QuotaState,
    SearchFilters,
    StoredRecord,
)


@runtime_checkable
class RecordStoragePort(Protocol):
    """Port for the durable and short-lived LogRecord projections.

    Examples: InMemoryRecordStorage, SQLiteRecordStorage.
    """

    async def write(self, record: LogRecord, expires_at: int) -> None:
        """Write both projections of ``record`` in one transaction.

        Raises:
            StorageTransactionError: If the write failed; neither
                projection is visible afterwards.
        """
        ...

    async def read_durable(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        newest_first: bool = False,
        processed: bool | None = None,
    ) -> list[StoredRecord]:
        """Read durable copies matching ``filters``, ordered by timestamp.

        ``processed`` restricts the read to copies with that flag.
        """
        ...

    async def stats_durable(self, filters: SearchFilters) -> LogStats:
        """Totals over durable copies matching ``filters``."""
        ...

    async def read_short_lived(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        now: int = 0,
        newest_first: bool = False,
    ) -> list[StoredRecord]:
        """Read unexpired short-lived copies matching ``filters``.

        Ordered by timestamp, oldest first unless ``newest_first``.
        """
        ...

    async def scan_durable(
        self, before: int | None, after_id: str, limit: int
    ) -> list[StoredRecord]:
        """Page durable copies by id.

        Args:
            before: Only records received before this time; None for all.
            after_id: Exclusive id cursor; "" starts from the beginning.
            limit: Maximum records returned.
        """
        ...

    async def delete_durable(self, ids: Sequence[str]) -> int:
        """Delete durable copies by id in one transaction. Returns count."""
        ...

    async def delete_expired_short_lived(self, now: int, limit: int) -> int:
        """Delete up to ``limit`` short-lived copies with expires_at <= now."""
        ...

    async def discard(self, record_id: str) -> None:
        """Remove both projections of a record whose submission failed."""
        ...

    async def mark_processed(self, ids: Sequence[str]) -> int:
        """Flag durable copies as processed by batch analysis."""
        ...

    async def count_durable(self) -> int: ...

    async def count_short_lived(self) -> int: ...


@runtime_checkable
class QuotaStorePort(Protocol):
    """Port for the singleton quota ledger row.

    Examples: InMemoryQuotaStore, SQLiteQuotaStore.
    """

    async def load(self) -> QuotaState | None:
        """Return the current state, or None if the ledger was never created.

        Raises:
            ConfigurationError: If the stored row is unreadable.
        """
        ...

    async def compare_and_swap(
        self, expected_version: int | None, state: QuotaState
    ) -> bool:
        """Replace the ledger row only if it is still at ``expected_version``.

        ``expected_version=None`` inserts the row only if it is absent.
        Returns True if the swap happened.
        """
        ...

    async def reset(self, state: QuotaState) -> None:
        """Unconditionally overwrite the ledger row (self-healing only)."""
        ...


@runtime_checkable
class FingerprintStorePort(Protocol):
    """Port for the dedup fingerprint table.

    Examples: InMemoryFingerprintStore, SQLiteFingerprintStore.
    """

    async def check_and_record(
        self, fingerprint: str, now: int, window_ms: int
    ) -> FingerprintEntry:
        """Atomically open a window or count a repeat within the open one.

        If no window is open for ``fingerprint`` at ``now``, a new one is
        created with ``suppressed_count=0``. Otherwise the open window's
        ``suppressed_count`` is incremented. Returns the resulting entry.
        """
        ...

    async def release(self, fingerprint: str, first_seen_at: int) -> bool:
        """Delete the window only if it is the one opened at ``first_seen_at``."""
        ...

    async def get(self, fingerprint: str) -> FingerprintEntry | None: ...

    async def purge_expired(self, now: int, limit: int) -> int:
        """Delete up to ``limit`` windows with expires_at <= now."""
        ...

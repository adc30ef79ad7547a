"""In-memory storage adapters for records, the quota ledger and fingerprints.

Suitable for testing and single-process deployments where persistence
is not required. Every mutation happens under a lock with no await
inside, so each port operation is atomic even across threads.
"""

import threading
from collections.abc import Sequence
from dataclasses import replace

from logbridge.core.models import (
    ANONYMOUS_USER,
    FingerprintEntry,
    LogRecord,
    LogStats,
    QuotaState,
    SearchFilters,
    StoredRecord,
)


def _order_key(stored: StoredRecord) -> tuple[int, int, str]:
    record = stored.record
    return (record.timestamp, record.received_at, record.id)


class InMemoryRecordStorage:
    """In-memory implementation of RecordStoragePort."""

    def __init__(self) -> None:
        self._durable: dict[str, StoredRecord] = {}
        self._short_lived: dict[str, StoredRecord] = {}
        self._lock = threading.Lock()

    async def write(self, record: LogRecord, expires_at: int) -> None:
        """Write both projections of a record."""
        with self._lock:
            self._durable[record.id] = StoredRecord(record=record, durable=True)
            self._short_lived[record.id] = StoredRecord(
                record=record, durable=False, expires_at=expires_at
            )

    @staticmethod
    def _select(
        items: list[StoredRecord],
        filters: SearchFilters,
        limit: int,
        offset: int,
        newest_first: bool = False,
    ) -> list[StoredRecord]:
        matching = [s for s in items if filters.matches(s.record)]
        matching.sort(key=_order_key, reverse=newest_first)
        return matching[offset : offset + limit]

    async def read_durable(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        newest_first: bool = False,
        processed: bool | None = None,
    ) -> list[StoredRecord]:
        with self._lock:
            items = [
                s
                for s in self._durable.values()
                if processed is None or s.processed == processed
            ]
        return self._select(items, filters, limit, offset, newest_first)

    async def stats_durable(self, filters: SearchFilters) -> LogStats:
        with self._lock:
            items = [s for s in self._durable.values() if filters.matches(s.record)]
        if not items:
            return LogStats.empty()
        stats = LogStats.empty()
        for stored in items:
            stats.by_system[stored.record.system_area.value] += 1
            stats.by_level[stored.record.level.value] += 1
        users = {s.record.user_id for s in items} - {ANONYMOUS_USER}
        return replace(
            stats,
            total=len(items),
            unique_traces=len({s.record.trace_id for s in items}),
            unique_users=len(users),
            processed=sum(1 for s in items if s.processed),
            oldest=min(s.record.timestamp for s in items),
            newest=max(s.record.timestamp for s in items),
        )

    async def read_short_lived(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        now: int = 0,
        newest_first: bool = False,
    ) -> list[StoredRecord]:
        with self._lock:
            items = [
                s
                for s in self._short_lived.values()
                if s.expires_at is None or s.expires_at > now
            ]
        return self._select(items, filters, limit, offset, newest_first)

    async def scan_durable(
        self, before: int | None, after_id: str, limit: int
    ) -> list[StoredRecord]:
        with self._lock:
            ids = sorted(i for i in self._durable if i > after_id)
            page = []
            for record_id in ids:
                stored = self._durable[record_id]
                if before is not None and stored.record.received_at >= before:
                    continue
                page.append(stored)
                if len(page) >= limit:
                    break
        return page

    async def delete_durable(self, ids: Sequence[str]) -> int:
        with self._lock:
            return sum(1 for i in ids if self._durable.pop(i, None) is not None)

    async def delete_expired_short_lived(self, now: int, limit: int) -> int:
        with self._lock:
            expired = [
                i
                for i, s in self._short_lived.items()
                if s.expires_at is not None and s.expires_at <= now
            ][:limit]
            for record_id in expired:
                del self._short_lived[record_id]
        return len(expired)

    async def discard(self, record_id: str) -> None:
        with self._lock:
            self._durable.pop(record_id, None)
            self._short_lived.pop(record_id, None)

    async def mark_processed(self, ids: Sequence[str]) -> int:
        marked = 0
        with self._lock:
            for record_id in ids:
                stored = self._durable.get(record_id)
                if stored is not None and not stored.processed:
                    self._durable[record_id] = replace(stored, processed=True)
                    marked += 1
        return marked

    async def count_durable(self) -> int:
        return len(self._durable)

    async def count_short_lived(self) -> int:
        return len(self._short_lived)


class InMemoryQuotaStore:
    """In-memory implementation of QuotaStorePort."""

    def __init__(self, state: QuotaState | None = None) -> None:
        self._state = state
        self._lock = threading.Lock()

    async def load(self) -> QuotaState | None:
        return self._state

    async def compare_and_swap(
        self, expected_version: int | None, state: QuotaState
    ) -> bool:
        with self._lock:
            if expected_version is None:
                if self._state is not None:
                    return False
            elif self._state is None or self._state.version != expected_version:
                return False
            self._state = state
            return True

    async def reset(self, state: QuotaState) -> None:
        with self._lock:
            self._state = state


class InMemoryFingerprintStore:
    """In-memory implementation of FingerprintStorePort."""

    def __init__(self) -> None:
        self._entries: dict[str, FingerprintEntry] = {}
        self._lock = threading.Lock()

    async def check_and_record(
        self, fingerprint: str, now: int, window_ms: int
    ) -> FingerprintEntry:
        with self._lock:
            existing = self._entries.get(fingerprint)
            if existing is not None and now < existing.expires_at:
                entry = replace(
                    existing, suppressed_count=existing.suppressed_count + 1
                )
            else:
                entry = FingerprintEntry(
                    fingerprint=fingerprint,
                    first_seen_at=now,
                    suppressed_count=0,
                    expires_at=now + window_ms,
                )
            self._entries[fingerprint] = entry
            return entry

    async def release(self, fingerprint: str, first_seen_at: int) -> bool:
        with self._lock:
            existing = self._entries.get(fingerprint)
            if existing is None or existing.first_seen_at != first_seen_at:
                return False
            del self._entries[fingerprint]
            return True

    async def get(self, fingerprint: str) -> FingerprintEntry | None:
        return self._entries.get(fingerprint)

    async def purge_expired(self, now: int, limit: int) -> int:
        with self._lock:
            expired = [
                f for f, e in self._entries.items() if e.expires_at <= now
            ][:limit]
            for fingerprint in expired:
                del self._entries[fingerprint]
        return len(expired)

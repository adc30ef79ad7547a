"""Storage adapters implementing core ports."""

from logbridge.adapters.storage.in_memory import (
    InMemoryFingerprintStore,
    InMemoryQuotaStore,
    InMemoryRecordStorage,
)
from logbridge.adapters.storage.sqlite_fingerprints import SQLiteFingerprintStore
from logbridge.adapters.storage.sqlite_quota import SQLiteQuotaStore
from logbridge.adapters.storage.sqlite_records import SQLiteRecordStorage

__all__ = [
    "InMemoryFingerprintStore",
    "InMemoryQuotaStore",
    "InMemoryRecordStorage",
    "SQLiteFingerprintStore",
    "SQLiteQuotaStore",
    "SQLiteRecordStorage",
]

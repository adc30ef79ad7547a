"""SQLite storage adapter for dedup fingerprint windows."""

from logbridge.adapters.storage.sqlite_base import SQLiteStorageBase
from logbridge.core.models import FingerprintEntry

_FINGERPRINT_SCHEMA = """
CREATE TABLE IF NOT EXISTS fingerprints (
    fingerprint TEXT PRIMARY KEY,
    first_seen_at INTEGER NOT NULL,
    suppressed_count INTEGER NOT NULL DEFAULT 0,
    expires_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_fingerprints_expires ON fingerprints(expires_at);
"""

# A repeat inside the open window bumps the counter; otherwise the
# window is reopened at the new first-seen time.
_UPSERT = """
INSERT INTO fingerprints (fingerprint, first_seen_at, suppressed_count, expires_at)
VALUES (?, ?, 0, ?)
ON CONFLICT(fingerprint) DO UPDATE SET
    suppressed_count = CASE
        WHEN fingerprints.expires_at > excluded.first_seen_at
        THEN fingerprints.suppressed_count + 1 ELSE 0 END,
    first_seen_at = CASE
        WHEN fingerprints.expires_at > excluded.first_seen_at
        THEN fingerprints.first_seen_at ELSE excluded.first_seen_at END,
    expires_at = CASE
        WHEN fingerprints.expires_at > excluded.first_seen_at
        THEN fingerprints.expires_at ELSE excluded.expires_at END
"""

_SELECT = """
SELECT fingerprint, first_seen_at, suppressed_count, expires_at
FROM fingerprints WHERE fingerprint = ?
"""

_PURGE = """
DELETE FROM fingerprints WHERE fingerprint IN (
    SELECT fingerprint FROM fingerprints WHERE expires_at <= ? LIMIT ?
)
"""


def _entry(row: tuple) -> FingerprintEntry:
    return FingerprintEntry(
        fingerprint=row[0],
        first_seen_at=row[1],
        suppressed_count=row[2],
        expires_at=row[3],
    )


class SQLiteFingerprintStore(SQLiteStorageBase):
    """SQLite implementation of FingerprintStorePort."""

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _FINGERPRINT_SCHEMA)

    async def check_and_record(
        self, fingerprint: str, now: int, window_ms: int
    ) -> FingerprintEntry:
        """Upsert the window and read it back inside one transaction."""
        async with self.transaction() as db:
            await db.execute(_UPSERT, (fingerprint, now, now + window_ms))
            async with db.execute(_SELECT, (fingerprint,)) as cursor:
                row = await cursor.fetchone()
        return _entry(row)

    async def release(self, fingerprint: str, first_seen_at: int) -> bool:
        async with self.transaction() as db:
            cursor = await db.execute(
                "DELETE FROM fingerprints WHERE fingerprint = ? AND first_seen_at = ?",
                (fingerprint, first_seen_at),
            )
            return cursor.rowcount == 1

    async def get(self, fingerprint: str) -> FingerprintEntry | None:
        row = await self._fetchone(_SELECT, (fingerprint,))
        return _entry(row) if row else None

    async def purge_expired(self, now: int, limit: int) -> int:
        async with self.transaction() as db:
            cursor = await db.execute(_PURGE, (now, limit))
            return cursor.rowcount

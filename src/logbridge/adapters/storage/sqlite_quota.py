"""SQLite storage adapter for the singleton quota ledger row."""

import json

from logbridge.adapters.storage.sqlite_base import SQLiteStorageBase, _safe_json_loads
from logbridge.core.exceptions import ConfigurationError
from logbridge.core.models import QuotaState

_QUOTA_SCHEMA = """
CREATE TABLE IF NOT EXISTS quota_ledger (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    version INTEGER NOT NULL,
    state TEXT NOT NULL
);
"""

_INSERT_IF_ABSENT = """
INSERT OR IGNORE INTO quota_ledger (id, version, state) VALUES (1, ?, ?)
"""

_UPDATE_IF_VERSION = """
UPDATE quota_ledger SET version = ?, state = ? WHERE id = 1 AND version = ?
"""

_REPLACE = """
INSERT OR REPLACE INTO quota_ledger (id, version, state) VALUES (1, ?, ?)
"""


class SQLiteQuotaStore(SQLiteStorageBase):
    """SQLite implementation of QuotaStorePort.

    The ledger is a single row guarded by a version column; every swap is
    one conditional UPDATE so concurrent writers cannot both succeed.
    """

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _QUOTA_SCHEMA)

    async def load(self) -> QuotaState | None:
        row = await self._fetchone(
            "SELECT version, state FROM quota_ledger WHERE id = 1"
        )
        if row is None:
            return None
        version = row[0] if isinstance(row[0], int) else None
        data = _safe_json_loads(row[1])
        if not isinstance(data, dict) or version is None:
            raise ConfigurationError("Quota ledger row is unreadable", version)
        data["version"] = version
        try:
            return QuotaState.from_dict(data)
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            raise ConfigurationError(
                f"Quota ledger row is malformed: {exc}", version
            ) from exc

    async def compare_and_swap(
        self, expected_version: int | None, state: QuotaState
    ) -> bool:
        payload = json.dumps(state.to_dict())
        async with self.transaction() as db:
            if expected_version is None:
                cursor = await db.execute(_INSERT_IF_ABSENT, (state.version, payload))
            else:
                cursor = await db.execute(
                    _UPDATE_IF_VERSION, (state.version, payload, expected_version)
                )
            return cursor.rowcount == 1

    async def reset(self, state: QuotaState) -> None:
        async with self.transaction() as db:
            await db.execute(_REPLACE, (state.version, json.dumps(state.to_dict())))

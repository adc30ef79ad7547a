"""SQLite storage adapter for the durable and short-lived record projections."""

import json
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from logbridge.adapters.storage.sqlite_base import SQLiteStorageBase, _safe_json_loads
from logbridge.core.models import (
    ANONYMOUS_USER,
    LogLevel,
    LogRecord,
    LogStats,
    SearchFilters,
    StoredRecord,
    SystemArea,
)

_RECORDS_SCHEMA = """
CREATE TABLE IF NOT EXISTS durable_records (
    id TEXT PRIMARY KEY,
    trace_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    system_area TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    raw_args TEXT NOT NULL DEFAULT '[]',
    stack_trace TEXT,
    timestamp INTEGER NOT NULL,
    received_at INTEGER NOT NULL,
    critical INTEGER NOT NULL DEFAULT 0,
    search_text TEXT NOT NULL DEFAULT '',
    processed INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_durable_trace ON durable_records(trace_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_durable_timestamp ON durable_records(timestamp);
CREATE INDEX IF NOT EXISTS idx_durable_received ON durable_records(received_at);

CREATE TABLE IF NOT EXISTS short_lived_records (
    id TEXT PRIMARY KEY,
    trace_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    system_area TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    raw_args TEXT NOT NULL DEFAULT '[]',
    stack_trace TEXT,
    timestamp INTEGER NOT NULL,
    received_at INTEGER NOT NULL,
    critical INTEGER NOT NULL DEFAULT 0,
    search_text TEXT NOT NULL DEFAULT '',
    expires_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_short_trace ON short_lived_records(trace_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_short_timestamp ON short_lived_records(timestamp);
CREATE INDEX IF NOT EXISTS idx_short_expires ON short_lived_records(expires_at);
"""

_COLUMNS = (
    "id, trace_id, user_id, system_area, level, message, raw_args, "
    "stack_trace, timestamp, received_at, critical"
)

_INSERT_DURABLE = f"""
INSERT INTO durable_records ({_COLUMNS}, search_text, processed)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
"""

_INSERT_SHORT_LIVED = f"""
INSERT INTO short_lived_records ({_COLUMNS}, search_text, expires_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_ORDER = "ORDER BY timestamp ASC, received_at ASC, id ASC"
_ORDER_NEWEST_FIRST = "ORDER BY timestamp DESC, received_at DESC, id DESC"

_DELETE_EXPIRED_SHORT_LIVED = """
DELETE FROM short_lived_records WHERE id IN (
    SELECT id FROM short_lived_records WHERE expires_at <= ? LIMIT ?
)
"""


def _to_row(record: LogRecord) -> tuple[Any, ...]:
    return (
        record.id,
        record.trace_id,
        record.user_id,
        record.system_area.value,
        record.level.value,
        record.message,
        json.dumps(list(record.raw_args), ensure_ascii=False),
        record.stack_trace,
        record.timestamp,
        record.received_at,
        int(record.critical),
    )


def _from_row(row: Any) -> LogRecord:
    raw_args = _safe_json_loads(row[6], default=[])
    return LogRecord(
        id=row[0],
        trace_id=row[1],
        user_id=row[2],
        system_area=SystemArea(row[3]),
        level=LogLevel(row[4]),
        message=row[5],
        raw_args=tuple(str(arg) for arg in raw_args),
        stack_trace=row[7],
        timestamp=row[8],
        received_at=row[9],
        critical=bool(row[10]),
    )


def _where(filters: SearchFilters) -> tuple[list[str], list[Any]]:
    """Translate search filters into SQL predicates and parameters."""
    clauses: list[str] = []
    params: list[Any] = []
    if filters.system_area is not None:
        clauses.append("system_area = ?")
        params.append(filters.system_area.value)
    if filters.level is not None:
        clauses.append("level = ?")
        params.append(filters.level.value)
    if filters.user_id is not None:
        clauses.append("user_id = ?")
        params.append(filters.user_id)
    if filters.trace_id is not None:
        clauses.append("trace_id = ?")
        params.append(filters.trace_id)
    if filters.time_range is not None:
        if filters.time_range.start is not None:
            clauses.append("timestamp >= ?")
            params.append(filters.time_range.start)
        if filters.time_range.end is not None:
            clauses.append("timestamp <= ?")
            params.append(filters.time_range.end)
    if filters.text:
        # search_text is lowercased in Python at write time, as is the needle.
        clauses.append("instr(search_text, ?) > 0")
        params.append(filters.text.lower())
    return clauses, params


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class SQLiteRecordStorage(SQLiteStorageBase):
    """SQLite implementation of RecordStoragePort.

    Both projections live in the same database so the dual write is a
    single transaction: readers see either both copies or neither.
    """

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path, _RECORDS_SCHEMA)

    async def write(self, record: LogRecord, expires_at: int) -> None:
        """Write both projections of a record in one transaction."""
        row = (*_to_row(record), record.search_text)
        async with self.transaction() as db:
            await db.execute(_INSERT_DURABLE, row)
            await db.execute(_INSERT_SHORT_LIVED, (*row, expires_at))

    async def read_durable(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        newest_first: bool = False,
        processed: bool | None = None,
    ) -> list[StoredRecord]:
        clauses, params = _where(filters)
        if processed is not None:
            clauses.append("processed = ?")
            params.append(int(processed))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = _ORDER_NEWEST_FIRST if newest_first else _ORDER
        query = (
            f"SELECT {_COLUMNS}, processed FROM durable_records {where} "
            f"{order} LIMIT ? OFFSET ?"
        )
        rows = await self._fetchall(query, (*params, limit, offset))
        return [
            StoredRecord(record=_from_row(row), durable=True, processed=bool(row[11]))
            for row in rows
        ]

    async def stats_durable(self, filters: SearchFilters) -> LogStats:
        clauses, params = _where(filters)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        totals = await self._fetchone(
            "SELECT COUNT(*), COUNT(DISTINCT trace_id), "
            "COUNT(DISTINCT CASE WHEN user_id != ? THEN user_id END), "
            "COALESCE(SUM(processed), 0), MIN(timestamp), MAX(timestamp) "
            f"FROM durable_records {where}",
            (ANONYMOUS_USER, *params),
        )
        stats = LogStats.empty()
        if totals is None or totals[0] == 0:
            return stats
        for column, counts in (
            ("system_area", stats.by_system),
            ("level", stats.by_level),
        ):
            rows = await self._fetchall(
                f"SELECT {column}, COUNT(*) FROM durable_records {where} "
                f"GROUP BY {column}",
                tuple(params),
            )
            for value, count in rows:
                counts[value] = count
        return replace(
            stats,
            total=totals[0],
            unique_traces=totals[1],
            unique_users=totals[2],
            processed=totals[3],
            oldest=totals[4],
            newest=totals[5],
        )

    async def read_short_lived(
        self,
        filters: SearchFilters,
        limit: int,
        offset: int = 0,
        now: int = 0,
        newest_first: bool = False,
    ) -> list[StoredRecord]:
        clauses, params = _where(filters)
        clauses.append("expires_at > ?")
        params.append(now)
        order = _ORDER_NEWEST_FIRST if newest_first else _ORDER
        query = (
            f"SELECT {_COLUMNS}, expires_at FROM short_lived_records "
            f"WHERE {' AND '.join(clauses)} {order} LIMIT ? OFFSET ?"
        )
        rows = await self._fetchall(query, (*params, limit, offset))
        return [
            StoredRecord(record=_from_row(row), durable=False, expires_at=row[11])
            for row in rows
        ]

    async def scan_durable(
        self, before: int | None, after_id: str, limit: int
    ) -> list[StoredRecord]:
        clauses = ["id > ?"]
        params: list[Any] = [after_id]
        if before is not None:
            clauses.append("received_at < ?")
            params.append(before)
        query = (
            f"SELECT {_COLUMNS}, processed FROM durable_records "
            f"WHERE {' AND '.join(clauses)} ORDER BY id ASC LIMIT ?"
        )
        rows = await self._fetchall(query, (*params, limit))
        return [
            StoredRecord(record=_from_row(row), durable=True, processed=bool(row[11]))
            for row in rows
        ]

    async def delete_durable(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        query = f"DELETE FROM durable_records WHERE id IN ({_placeholders(len(ids))})"
        async with self.transaction() as db:
            cursor = await db.execute(query, tuple(ids))
            return cursor.rowcount

    async def delete_expired_short_lived(self, now: int, limit: int) -> int:
        async with self.transaction() as db:
            cursor = await db.execute(_DELETE_EXPIRED_SHORT_LIVED, (now, limit))
            return cursor.rowcount

    async def discard(self, record_id: str) -> None:
        async with self.transaction() as db:
            await db.execute("DELETE FROM durable_records WHERE id = ?", (record_id,))
            await db.execute(
                "DELETE FROM short_lived_records WHERE id = ?", (record_id,)
            )

    async def mark_processed(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        query = (
            "UPDATE durable_records SET processed = 1 "
            f"WHERE processed = 0 AND id IN ({_placeholders(len(ids))})"
        )
        async with self.transaction() as db:
            cursor = await db.execute(query, tuple(ids))
            return cursor.rowcount

    async def count_durable(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM durable_records")
        return row[0] if row else 0

    async def count_short_lived(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM short_lived_records")
        return row[0] if row else 0

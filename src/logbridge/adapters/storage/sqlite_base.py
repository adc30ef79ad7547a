"""Base class for SQLite storage adapters."""

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from logbridge.core.exceptions import StorageTransactionError

# Seconds a connection waits on a locked database before failing.
BUSY_TIMEOUT = 5.0


def _safe_json_loads(data: str, default: Any = None) -> Any:
    """Safely parse JSON data, returning default on decode error.

    Args:
        data: JSON string to parse.
        default: Value to return if parsing fails.

    Returns:
        Parsed JSON, or default if parsing fails.
    """
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return default


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._write_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _is_memory(self) -> bool:
        return self._db_path == ":memory:"

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._is_memory:
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a database connection."""
        await self._ensure_initialized()
        if self._is_memory:
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        try:
            db = await self._get_connection()
        except sqlite3.Error as exc:
            raise StorageTransactionError(str(exc)) from exc
        try:
            yield db
        finally:
            if not self._is_memory:
                await db.close()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[aiosqlite.Connection]:
        """Like connection(), but serialized on the shared :memory: connection.

        File databases get isolation from SQLite itself; the single
        in-memory connection needs the lock so one coroutine never reads
        another's uncommitted transaction.
        """
        if not self._is_memory:
            async with self.connection() as db:
                yield db
            return
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        async with self._write_lock:
            async with self.connection() as db:
                yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for one write transaction.

        Commits on success and rolls back on any error. SQLite errors are
        raised as StorageTransactionError.
        """
        async with self.exclusive() as db:
            try:
                yield db
                await db.commit()
            except sqlite3.Error as exc:
                await db.rollback()
                raise StorageTransactionError(str(exc)) from exc
            except BaseException:
                await db.rollback()
                raise

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager. Subclasses
    provide the schema and implement their port's operations.

    For :memory: databases, a persistent connection is maintained since
    in-memory databases are connection-scoped in SQLite, so two adapters
    never share an in-memory database.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._manager = AsyncConnectionManager(db_path, schema)

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._manager.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for a committed write transaction."""
        async with self._manager.transaction() as conn:
            yield conn

    async def _fetchall(self, query: str, params: tuple[Any, ...]) -> list[Any]:
        try:
            async with self._manager.exclusive() as db:
                async with db.execute(query, params) as cursor:
                    return list(await cursor.fetchall())
        except sqlite3.Error as exc:
            raise StorageTransactionError(str(exc)) from exc

    async def _fetchone(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

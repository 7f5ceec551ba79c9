"""Document store connection management for eventhub.

A single :class:`ConnectionCache` owns the process-wide store handle. The first
caller starts the connection attempt and every caller arriving while it is in
flight awaits that same attempt. A failed attempt is dropped so the next
``acquire()`` starts over.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable

import aiosqlite

from eventhub.config import ConnectionOptions, connection_options, database_uri
from eventhub.errors import StoreConnectionError

log = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        slug TEXT NOT NULL,
        description TEXT NOT NULL,
        overview TEXT NOT NULL,
        image TEXT NOT NULL,
        venue TEXT NOT NULL,
        location TEXT NOT NULL,
        date TEXT NOT NULL,
        time TEXT NOT NULL,
        mode TEXT NOT NULL,
        audience TEXT NOT NULL,
        agenda TEXT NOT NULL,
        organizer TEXT NOT NULL,
        tags TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_events_slug ON events(slug);
    CREATE INDEX IF NOT EXISTS idx_events_created_at ON events(created_at);

    CREATE TABLE IF NOT EXISTS bookings (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        email TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_event_email
        ON bookings(event_id, email);
    CREATE INDEX IF NOT EXISTS idx_bookings_event_id ON bookings(event_id);
"""


class Database:
    """Shared handle over a write connection and a read connection.

    Reads run on their own connection, so in WAL mode they only ever see
    committed rows, never the inside of an open write transaction.
    Commands are never buffered: once the handle is closed every call raises
    :class:`StoreConnectionError` straight away. At most ``max_pool_size``
    operations run at once and write transactions are serialized.
    """

    def __init__(
        self,
        writer: aiosqlite.Connection,
        reader: aiosqlite.Connection,
        options: ConnectionOptions | None = None,
    ) -> None:
        self.options = options or ConnectionOptions()
        self._writer = writer
        self._reader = reader
        self._open = True
        self._slots = asyncio.Semaphore(self.options.max_pool_size)
        self._write_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise StoreConnectionError("Store connection is closed")

    async def fetchone(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Row | None:
        self._ensure_open()
        async with self._slots:
            async with self._reader.execute(sql, tuple(params)) as cursor:
                return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        self._ensure_open()
        async with self._slots:
            async with self._reader.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())

    async def iterate(
        self, sql: str, params: Iterable[Any] = ()
    ) -> AsyncIterator[aiosqlite.Row]:
        """Yield rows one at a time while holding a single pool slot."""
        self._ensure_open()
        async with self._slots:
            async with self._reader.execute(sql, tuple(params)) as cursor:
                async for row in cursor:
                    yield row

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements as one write transaction."""
        self._ensure_open()
        async with self._slots, self._write_lock:
            await self._writer.execute("BEGIN IMMEDIATE")
            try:
                yield self._writer
            except BaseException:
                await self._writer.execute("ROLLBACK")
                raise
            else:
                await self._writer.execute("COMMIT")

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        try:
            await self._reader.close()
        finally:
            await self._writer.close()
        log.info("Store connection closed")


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """Create the events and bookings collections and their indexes."""
    await conn.executescript(SCHEMA)


async def _open_connection(uri: str, options: ConnectionOptions) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(
        uri,
        uri=True,
        isolation_level=None,
        timeout=options.server_selection_timeout,
    )
    conn.row_factory = aiosqlite.Row
    return conn


async def _connect(
    uri: str, options: ConnectionOptions
) -> tuple[aiosqlite.Connection, aiosqlite.Connection]:
    writer = await _open_connection(uri, options)
    try:
        await writer.execute("PRAGMA journal_mode=WAL")
        await writer.execute("SELECT 1")
        await ensure_schema(writer)
        reader = await _open_connection(uri, options)
    except BaseException:
        await writer.close()
        raise
    try:
        await reader.execute("PRAGMA query_only=ON")
    except BaseException:
        await reader.close()
        await writer.close()
        raise
    return writer, reader


async def open_database(uri: str, options: ConnectionOptions) -> Database:
    """Open a store handle, giving up after the server-selection timeout."""
    try:
        writer, reader = await asyncio.wait_for(
            _connect(uri, options), timeout=options.server_selection_timeout
        )
    except asyncio.TimeoutError as exc:
        raise StoreConnectionError(
            f"Timed out after {options.server_selection_timeout}s connecting to the store"
        ) from exc
    except (sqlite3.Error, OSError) as exc:
        raise StoreConnectionError(f"Could not connect to the store: {exc}") from exc
    return Database(writer, reader, options)


Connector = Callable[[str, ConnectionOptions], Awaitable[Database]]


class CacheState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionCache:
    """Holds at most one live handle and at most one in-flight attempt."""

    def __init__(self, connector: Connector = open_database) -> None:
        self._connector = connector
        self._conn: Database | None = None
        self._pending: asyncio.Future[Database] | None = None
        self._failed = False

    @property
    def state(self) -> CacheState:
        if self._conn is not None and self._conn.is_open:
            return CacheState.CONNECTED
        if self._pending is not None:
            return CacheState.CONNECTING
        if self._failed:
            return CacheState.FAILED
        return CacheState.UNINITIALIZED

    async def acquire(self) -> Database:
        """Return the shared handle, connecting at most once at a time.

        Raises:
            ConfigurationError: If ``DATABASE_URI`` is not set when a new
                attempt has to start.
            StoreConnectionError: If the attempt cannot reach the store.
        """
        if self._conn is not None:
            if self._conn.is_open:
                return self._conn
            self._conn = None

        # No await between the check and the assignment below, so concurrent
        # callers always see the pending attempt.
        if self._pending is None:
            uri = database_uri()
            options = connection_options()
            log.info("Connecting to document store")
            self._pending = asyncio.ensure_future(self._connector(uri, options))
        pending = self._pending

        try:
            conn = await asyncio.shield(pending)
        except asyncio.CancelledError:
            if not pending.done():
                raise
            self._settle_failure(pending)
            raise
        except Exception:
            self._settle_failure(pending)
            raise

        if self._pending is pending:
            self._pending = None
            self._conn = conn
            self._failed = False
            log.info("Document store connection established")
        return conn

    def _settle_failure(self, pending: asyncio.Future[Database]) -> None:
        if self._pending is pending:
            self._pending = None
            self._failed = True
            exc = pending.exception() if not pending.cancelled() else None
            log.error(
                "Document store connection attempt failed",
                extra={"error_type": type(exc).__name__ if exc else "CancelledError"},
            )

    async def close(self) -> None:
        """Close the cached handle and go back to uninitialized."""
        conn, self._conn = self._conn, None
        self._failed = False
        if conn is not None:
            await conn.close()


_default_cache: ConnectionCache | None = None


def get_connection_cache() -> ConnectionCache:
    """Return the process-wide cache, creating it on first use."""
    global _default_cache
    if _default_cache is None:
        _default_cache = ConnectionCache()
    return _default_cache

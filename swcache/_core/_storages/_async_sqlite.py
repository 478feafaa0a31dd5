from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import List, Optional, Union

import anyio
import anysqlite

from swcache._core._storages._base import AsyncBaseCache, AsyncBaseCacheStorage, RequestInfo, as_request, build_entry
from swcache._core._storages._packing import pack, unpack
from swcache._core.models import CacheEntry, Request, Response
from swcache._exceptions import StorageError
from swcache._utils import ensure_cache_dict, generate_key

logger = logging.getLogger("swcache.storages")

__all__ = ("AsyncSqliteCache", "AsyncSqliteCacheStorage")


class AsyncSqliteCache(AsyncBaseCache):
    def __init__(self, name: str, storage: "AsyncSqliteCacheStorage") -> None:
        super().__init__(name)
        self._storage = storage

    async def match(self, request: RequestInfo) -> Optional[Response]:
        key = generate_key(as_request(request))
        connection = await self._storage._ensure_connection()

        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT data FROM entries WHERE partition = ? AND cache_key = ?",
                (self.name, key),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        entry = unpack(row[0], partition=self.name)
        if entry is None:
            logger.debug(f"Ignoring the entry for {key} in '{self.name}' since it was packed by another version.")
            return None
        return entry.to_response()

    async def put(self, request: RequestInfo, response: Response) -> CacheEntry:
        request = as_request(request)
        entry = await build_entry(request, response, self.name)
        connection = await self._storage._ensure_connection()

        async with self._storage._lock:
            cursor = await connection.execute("SELECT 1 FROM partitions WHERE name = ?", (self.name,))
            if await cursor.fetchone() is None:
                raise StorageError(f"The '{self.name}' partition was deleted.")
            try:
                await connection.execute(
                    "INSERT OR REPLACE INTO entries (partition, cache_key, data, created_at) VALUES (?, ?, ?, ?)",
                    (self.name, entry.cache_key, pack(entry), entry.meta.created_at),
                )
                await connection.commit()
            except sqlite3.Error as exc:
                raise StorageError(f"Could not store {entry.cache_key} in '{self.name}'.") from exc

        logger.debug(f"Stored {entry.cache_key} in the '{self.name}' partition.")
        return entry

    async def delete(self, request: RequestInfo) -> bool:
        key = generate_key(as_request(request))
        connection = await self._storage._ensure_connection()

        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT 1 FROM entries WHERE partition = ? AND cache_key = ?",
                (self.name, key),
            )
            if await cursor.fetchone() is None:
                return False
            await connection.execute(
                "DELETE FROM entries WHERE partition = ? AND cache_key = ?",
                (self.name, key),
            )
            await connection.commit()
            return True

    async def keys(self) -> List[Request]:
        connection = await self._storage._ensure_connection()

        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT data FROM entries WHERE partition = ? ORDER BY rowid",
                (self.name,),
            )
            rows = await cursor.fetchall()

        requests: List[Request] = []
        for row in rows:
            entry = unpack(row[0], partition=self.name)
            if entry is not None:
                requests.append(entry.request)
        return requests


class AsyncSqliteCacheStorage(AsyncBaseCacheStorage):
    """
    A cache storage persisted in a SQLite database.

    :param connection: An already opened connection. When given, no cache directory is created.
    :param database_path: Where the database lives when no connection is given,
        defaults to `.cache/swcache/swcache.db`.
    """

    def __init__(
        self,
        *,
        connection: Optional[anysqlite.Connection] = None,
        database_path: Union[str, Path] = "swcache.db",
    ) -> None:
        self.connection = connection
        self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
        self._initialized = False
        self._lock = anyio.Lock()
        self._setup_lock = anyio.Lock()

    async def _ensure_connection(self) -> anysqlite.Connection:
        """Ensure connection is established and database is initialized."""
        async with self._setup_lock:
            if self.connection is None:
                # Create cache directory and resolve full path on first connection
                parent = self.database_path.parent if self.database_path.parent != Path(".") else None
                full_path = ensure_cache_dict(parent) / self.database_path.name
                self.connection = await anysqlite.connect(str(full_path))
            if not self._initialized:
                await self._initialize_database(self.connection)
                self._initialized = True
            return self.connection

    async def _initialize_database(self, connection: anysqlite.Connection) -> None:
        await connection.execute("""
            CREATE TABLE IF NOT EXISTS partitions (
                name TEXT PRIMARY KEY,
                created_at REAL NOT NULL
            )
        """)
        await connection.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                partition TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                data BLOB NOT NULL,
                created_at REAL NOT NULL,
                PRIMARY KEY (partition, cache_key)
            )
        """)
        await connection.commit()

    async def open(self, name: str) -> AsyncSqliteCache:
        connection = await self._ensure_connection()
        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM partitions WHERE name = ?", (name,))
            if await cursor.fetchone() is None:
                logger.debug(f"Creating the '{name}' partition.")
                await connection.execute(
                    "INSERT INTO partitions (name, created_at) VALUES (?, ?)",
                    (name, time.time()),
                )
                await connection.commit()
        return AsyncSqliteCache(name, storage=self)

    async def get(self, name: str) -> Optional[AsyncSqliteCache]:
        if not await self.has(name):
            return None
        return AsyncSqliteCache(name, storage=self)

    async def has(self, name: str) -> bool:
        connection = await self._ensure_connection()
        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM partitions WHERE name = ?", (name,))
            return await cursor.fetchone() is not None

    async def delete(self, name: str) -> bool:
        connection = await self._ensure_connection()
        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM partitions WHERE name = ?", (name,))
            existed = await cursor.fetchone() is not None
            try:
                await connection.execute("DELETE FROM partitions WHERE name = ?", (name,))
                await connection.execute("DELETE FROM entries WHERE partition = ?", (name,))
                await connection.commit()
            except sqlite3.Error as exc:
                raise StorageError(f"Could not delete the '{name}' partition.") from exc
        if existed:
            logger.debug(f"Deleted the '{name}' partition.")
        return existed

    async def keys(self) -> List[str]:
        connection = await self._ensure_connection()
        async with self._lock:
            cursor = await connection.execute("SELECT name FROM partitions ORDER BY rowid")
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def count(self, name: str) -> int:
        connection = await self._ensure_connection()
        async with self._lock:
            cursor = await connection.execute("SELECT COUNT(*) FROM entries WHERE partition = ?", (name,))
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self._initialized = False

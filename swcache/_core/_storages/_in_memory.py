from __future__ import annotations

import logging
import typing as tp

import anyio

from swcache._core._storages._base import AsyncBaseCache, AsyncBaseCacheStorage, RequestInfo, as_request, build_entry
from swcache._core.models import CacheEntry, Request, Response
from swcache._exceptions import StorageError
from swcache._utils import generate_key

logger = logging.getLogger("swcache.storages")

__all__ = ("AsyncInMemoryCache", "AsyncInMemoryCacheStorage")


class AsyncInMemoryCache(AsyncBaseCache):
    def __init__(self, name: str, lock: anyio.Lock) -> None:
        super().__init__(name)
        self._entries: tp.Dict[str, CacheEntry] = {}
        self._lock = lock
        self.deleted = False

    async def match(self, request: RequestInfo) -> tp.Optional[Response]:
        key = generate_key(as_request(request))
        async with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.to_response()

    async def put(self, request: RequestInfo, response: Response) -> CacheEntry:
        request = as_request(request)
        entry = await build_entry(request, response, self.name)
        async with self._lock:
            if self.deleted:
                raise StorageError(f"The '{self.name}' partition was deleted.")
            # Re-inserting moves the key to the end, matching the insertion order of a fresh put.
            self._entries.pop(entry.cache_key, None)
            self._entries[entry.cache_key] = entry
        logger.debug(f"Stored {entry.cache_key} in the '{self.name}' partition.")
        return entry

    async def delete(self, request: RequestInfo) -> bool:
        key = generate_key(as_request(request))
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def keys(self) -> tp.List[Request]:
        async with self._lock:
            return [entry.request for entry in self._entries.values()]


class AsyncInMemoryCacheStorage(AsyncBaseCacheStorage):
    """
    A process-local cache storage. Everything is lost when the process exits.
    """

    def __init__(self) -> None:
        self._lock = anyio.Lock()
        self._partitions: tp.Dict[str, AsyncInMemoryCache] = {}

    async def open(self, name: str) -> AsyncInMemoryCache:
        async with self._lock:
            if name not in self._partitions:
                logger.debug(f"Creating the '{name}' partition.")
                self._partitions[name] = AsyncInMemoryCache(name, lock=anyio.Lock())
            return self._partitions[name]

    async def get(self, name: str) -> tp.Optional[AsyncInMemoryCache]:
        async with self._lock:
            return self._partitions.get(name)

    async def has(self, name: str) -> bool:
        async with self._lock:
            return name in self._partitions

    async def delete(self, name: str) -> bool:
        async with self._lock:
            cache = self._partitions.pop(name, None)
        if cache is None:
            return False
        cache.deleted = True
        logger.debug(f"Deleted the '{name}' partition.")
        return True

    async def keys(self) -> tp.List[str]:
        async with self._lock:
            return list(self._partitions)

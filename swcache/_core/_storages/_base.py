from __future__ import annotations

import abc
import typing as tp
import uuid
from dataclasses import replace

from swcache._core.models import CacheEntry, EntryMeta, Request, Response
from swcache._core._storages._packing import filter_out_swcache_metadata
from swcache._utils import generate_key, get_scheme

RequestInfo = tp.Union[Request, str]


def as_request(request: RequestInfo) -> Request:
    """
    Accepts either a request or an absolute URL, the same way the cache lookup APIs do.
    """
    if isinstance(request, Request):
        return request
    if get_scheme(request) not in ("http", "https"):
        raise ValueError(f"Expected an absolute http(s) URL, got {request!r}")
    return Request(method="GET", url=request)


async def build_entry(request: Request, response: Response, partition: str) -> CacheEntry:
    """
    Snapshots a request/response pair for storage, buffering the response body.
    """
    body = await response.aread()
    return CacheEntry(
        id=uuid.uuid4(),
        cache_key=generate_key(request),
        request=replace(
            request,
            headers=request.headers.copy(),
            metadata=filter_out_swcache_metadata(request.metadata),
        ),
        response=replace(
            response,
            headers=response.headers.copy(),
            metadata=filter_out_swcache_metadata(response.metadata),
        ),
        body=body,
        meta=EntryMeta(),
        partition=partition,
    )


class AsyncBaseCache(abc.ABC):
    """
    A single named partition of the cache storage.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    @abc.abstractmethod
    async def match(self, request: RequestInfo) -> tp.Optional[Response]:
        """
        Returns a fresh copy of the stored response for the request, or None.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def put(self, request: RequestInfo, response: Response) -> CacheEntry:
        """
        Stores the response under the request identity, replacing any previous entry.

        The response body is read completely before anything is written.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete(self, request: RequestInfo) -> bool:
        """
        Removes the entry for the request. Returns whether an entry existed.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def keys(self) -> tp.List[Request]:
        """
        Returns the stored requests in insertion order.
        """
        raise NotImplementedError()


class AsyncBaseCacheStorage(abc.ABC):
    """
    A collection of named cache partitions.
    """

    @abc.abstractmethod
    async def open(self, name: str) -> AsyncBaseCache:
        """
        Returns the partition with the given name, creating it if absent.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def has(self, name: str) -> bool:
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete(self, name: str) -> bool:
        """
        Deletes the partition and all of its entries. Returns whether it existed.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def keys(self) -> tp.List[str]:
        """
        Returns partition names in creation order.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def get(self, name: str) -> tp.Optional[AsyncBaseCache]:
        """
        Returns the partition with the given name, or None. Never creates it.
        """
        raise NotImplementedError()

    async def match(self, request: RequestInfo) -> tp.Optional[Response]:
        """
        Looks the request up in every partition, in creation order, and returns the first hit.
        """
        for name in await self.keys():
            cache = await self.get(name)
            if cache is None:
                # Deleted since the names were listed.
                continue
            response = await cache.match(request)
            if response is not None:
                return response
        return None

    async def close(self) -> None:
        return None

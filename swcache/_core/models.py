from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Literal,
    Mapping,
    Optional,
    TypedDict,
    cast,
)

from swcache._core._headers import Headers
from swcache._utils import make_async_iterator

RequestDestination = Literal["", "document", "script", "style", "image", "font", "manifest"]
ResponseType = Literal["basic", "cors", "opaque", "error", "default"]


class RequestMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "swcache_" to avoid collisions with user data
    swcache_client_id: str
    """Identifier of the client (page) that issued the request."""


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    destination: RequestDestination = ""
    metadata: RequestMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_navigation(self) -> bool:
        return self.destination == "document"

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
            return
        else:
            raise TypeError("Request stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire request body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, AsyncIterator):
            raise TypeError("Request stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "swcache_" to avoid collisions with user data
    swcache_from_cache: bool
    """Indicates whether the response was served from a cache partition."""

    swcache_partition: str
    """Name of the partition the response was read from."""

    swcache_stored: bool
    """Indicates whether a copy of the response was scheduled for storage."""

    swcache_created_at: float
    """Timestamp when the response was cached."""

    swcache_offline_fallback: bool
    """Indicates that the offline document was served instead of the requested one."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    reason_phrase: str = ""
    type: ResponseType = "basic"
    url: str = ""
    redirected: bool = False
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
        else:
            raise TypeError("Response stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, AsyncIterator):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected

    async def aclone(self) -> "Response":
        """
        Returns an independent copy of the response.

        The body is buffered first, so both the original and the clone can be read afterwards.
        """
        body = await self.aread()
        return replace(
            self,
            headers=self.headers.copy(),
            stream=make_async_iterator([body]),
            metadata=dict(self.metadata),
        )


@dataclass
class EntryMeta:
    created_at: float = field(default_factory=time.time)


@dataclass
class CacheEntry:
    """
    A stored request/response pair.

    The response is kept without its stream; `body` holds the full payload and
    `to_response` rebuilds a readable response for every lookup.
    """

    id: uuid.UUID
    cache_key: str
    request: Request
    response: Response
    body: bytes
    meta: EntryMeta = field(default_factory=EntryMeta)
    partition: Optional[str] = None

    def to_response(self) -> Response:
        metadata = ResponseMetadata(
            swcache_from_cache=True,
            swcache_created_at=self.meta.created_at,
            swcache_stored=False,
        )
        if self.partition is not None:
            metadata["swcache_partition"] = self.partition
        return replace(
            self.response,
            headers=self.response.headers.copy(),
            stream=make_async_iterator([self.body]),
            metadata={**self.response.metadata, **metadata},
        )

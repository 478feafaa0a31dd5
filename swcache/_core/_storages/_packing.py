from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, cast

import msgpack

from swcache._core._headers import Headers
from swcache._core.models import CacheEntry, EntryMeta, Request, Response

PACKING_VERSION = 1


def filter_out_swcache_metadata(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if not k.startswith("swcache_")}


def pack(value: CacheEntry, /) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "version": PACKING_VERSION,
                "id": value.id.bytes,
                "cache_key": value.cache_key,
                "request": {
                    "method": value.request.method,
                    "url": value.request.url,
                    "headers": value.request.headers._headers,
                    "destination": value.request.destination,
                    "extra": filter_out_swcache_metadata(value.request.metadata),
                },
                "response": {
                    "status_code": value.response.status_code,
                    "reason_phrase": value.response.reason_phrase,
                    "headers": value.response.headers._headers,
                    "type": value.response.type,
                    "url": value.response.url,
                    "redirected": value.response.redirected,
                    "extra": filter_out_swcache_metadata(value.response.metadata),
                },
                "body": value.body,
                "meta": {
                    "created_at": value.meta.created_at,
                },
            }
        ),
    )


def unpack(value: Optional[bytes], /, partition: Optional[str] = None) -> Optional[CacheEntry]:
    if value is None:
        return None

    data = msgpack.unpackb(value)
    if data.get("version") != PACKING_VERSION:
        return None

    return CacheEntry(
        id=uuid.UUID(bytes=data["id"]),
        cache_key=data["cache_key"],
        request=Request(
            method=data["request"]["method"],
            url=data["request"]["url"],
            headers=Headers(data["request"]["headers"]),
            destination=data["request"]["destination"],
            metadata=data["request"]["extra"],
        ),
        response=Response(
            status_code=data["response"]["status_code"],
            reason_phrase=data["response"]["reason_phrase"],
            headers=Headers(data["response"]["headers"]),
            type=data["response"]["type"],
            url=data["response"]["url"],
            redirected=data["response"]["redirected"],
            metadata=data["response"]["extra"],
        ),
        body=data["body"],
        meta=EntryMeta(created_at=data["meta"]["created_at"]),
        partition=partition,
    )

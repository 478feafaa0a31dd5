import uuid

import msgpack

from swcache import CacheEntry, EntryMeta, Headers, Request, Response
from swcache._core._storages._packing import pack, unpack


def make_entry() -> CacheEntry:
    return CacheEntry(
        id=uuid.UUID(int=1),
        cache_key="GET https://territorios.example/admin",
        request=Request(
            method="GET",
            url="https://territorios.example/admin",
            headers=Headers({"accept": "text/html"}),
            destination="document",
            metadata={"swcache_client_id": "page-1", "trace": "abc"},
        ),
        response=Response(
            status_code=200,
            headers=Headers({"content-type": "text/html"}),
            reason_phrase="OK",
            url="https://territorios.example/login",
            redirected=True,
            metadata={"swcache_stored": True},
        ),
        body=b"<html>admin</html>",
        meta=EntryMeta(created_at=1704067200.0),
    )


def test_unpack_restores_the_entry() -> None:
    entry = unpack(pack(make_entry()), partition="app-conductores-azure-v1")

    assert entry is not None
    assert entry.partition == "app-conductores-azure-v1"
    assert entry.request.destination == "document"
    assert entry.request.headers == Headers({"accept": "text/html"})
    assert entry.response.url == "https://territorios.example/login"
    assert entry.response.redirected is True
    assert entry.body == b"<html>admin</html>"
    assert entry.meta.created_at == 1704067200.0


def test_swcache_metadata_is_not_persisted() -> None:
    entry = unpack(pack(make_entry()))

    assert entry is not None
    assert entry.request.metadata == {"trace": "abc"}
    assert entry.response.metadata == {}


def test_entries_of_another_packing_version_are_ignored() -> None:
    data = msgpack.unpackb(pack(make_entry()))
    data["version"] = 0

    assert unpack(msgpack.packb(data)) is None
    assert unpack(None) is None

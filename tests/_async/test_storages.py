from datetime import datetime
from zoneinfo import ZoneInfo

import anyio
import anysqlite
import pytest
from inline_snapshot import snapshot
from time_machine import travel

from swcache import AsyncInMemoryCacheStorage, AsyncSqliteCacheStorage, Headers, Request, Response, StorageError
from swcache._core._storages._base import AsyncBaseCacheStorage
from swcache._utils import make_async_iterator


async def in_memory_storage() -> AsyncBaseCacheStorage:
    return AsyncInMemoryCacheStorage()


async def sqlite_storage() -> AsyncBaseCacheStorage:
    return AsyncSqliteCacheStorage(connection=await anysqlite.connect(":memory:"))


storage_factories = pytest.mark.parametrize("make_storage", [in_memory_storage, sqlite_storage])


def make_response(body: bytes, status_code: int = 200) -> Response:
    return Response(
        status_code=status_code,
        headers=Headers({"content-type": "text/html", "content-length": str(len(body))}),
        stream=make_async_iterator([body]),
        reason_phrase="OK",
        url="https://territorios.example/",
    )


@pytest.mark.anyio
@storage_factories
async def test_put_and_match(make_storage) -> None:
    storage = await make_storage()
    cache = await storage.open("app-conductores-azure-v1")

    await cache.put("https://territorios.example/", make_response(b"<html>home</html>"))
    response = await cache.match("https://territorios.example/")

    assert response is not None
    assert response.status_code == 200
    assert response.reason_phrase == "OK"
    assert response.headers["content-type"] == "text/html"
    assert response.type == "basic"
    assert response.metadata["swcache_from_cache"] is True
    assert response.metadata["swcache_partition"] == "app-conductores-azure-v1"
    assert await response.aread() == b"<html>home</html>"

    # Every lookup returns a fresh, readable copy.
    again = await cache.match("https://territorios.example/")
    assert again is not None
    assert await again.aread() == b"<html>home</html>"


@pytest.mark.anyio
@storage_factories
async def test_fragment_and_method_are_part_of_the_identity(make_storage) -> None:
    storage = await make_storage()
    cache = await storage.open("static-assets-v1")

    await cache.put("https://territorios.example/admin", make_response(b"admin"))

    assert await cache.match("https://territorios.example/admin#section") is not None
    assert await cache.match(Request(method="HEAD", url="https://territorios.example/admin")) is None
    assert await cache.match("https://territorios.example/admin?tab=1") is None


@pytest.mark.anyio
@storage_factories
async def test_put_replaces_and_moves_to_the_end(make_storage) -> None:
    storage = await make_storage()
    cache = await storage.open("app-conductores-azure-v1")

    await cache.put("https://territorios.example/a", make_response(b"a1"))
    await cache.put("https://territorios.example/b", make_response(b"b"))
    await cache.put("https://territorios.example/a", make_response(b"a2"))

    assert [request.url for request in await cache.keys()] == [
        "https://territorios.example/b",
        "https://territorios.example/a",
    ]
    response = await cache.match("https://territorios.example/a")
    assert response is not None
    assert await response.aread() == b"a2"


@pytest.mark.anyio
@storage_factories
async def test_delete_entry(make_storage) -> None:
    storage = await make_storage()
    cache = await storage.open("app-conductores-azure-v1")
    await cache.put("https://territorios.example/", make_response(b"home"))

    assert await cache.delete("https://territorios.example/") is True
    assert await cache.delete("https://territorios.example/") is False
    assert await cache.match("https://territorios.example/") is None


@pytest.mark.anyio
@storage_factories
async def test_partitions(make_storage) -> None:
    storage = await make_storage()

    await storage.open("app-conductores-azure-v1")
    await storage.open("static-assets-v1")
    await storage.open("app-conductores-azure-v1")

    assert await storage.keys() == ["app-conductores-azure-v1", "static-assets-v1"]
    assert await storage.has("static-assets-v1") is True

    assert await storage.delete("static-assets-v1") is True
    assert await storage.delete("static-assets-v1") is False
    assert await storage.has("static-assets-v1") is False
    assert await storage.keys() == ["app-conductores-azure-v1"]


@pytest.mark.anyio
@storage_factories
async def test_deleting_a_partition_removes_its_entries(make_storage) -> None:
    storage = await make_storage()
    cache = await storage.open("static-assets-v1")
    await cache.put("https://territorios.example/app.js", make_response(b"js"))

    await storage.delete("static-assets-v1")

    assert await storage.match("https://territorios.example/app.js") is None
    with pytest.raises(StorageError):
        await cache.put("https://territorios.example/app.js", make_response(b"js"))

    reopened = await storage.open("static-assets-v1")
    assert await reopened.keys() == []


@pytest.mark.anyio
@storage_factories
async def test_match_searches_partitions_in_creation_order(make_storage) -> None:
    storage = await make_storage()
    first = await storage.open("app-conductores-azure-v1")
    second = await storage.open("static-assets-v1")

    await second.put("https://territorios.example/logo.png", make_response(b"second"))
    await first.put("https://territorios.example/logo.png", make_response(b"first"))

    response = await storage.match("https://territorios.example/logo.png")
    assert response is not None
    assert response.metadata["swcache_partition"] == "app-conductores-azure-v1"
    assert await response.aread() == b"first"


@pytest.mark.anyio
async def test_relative_urls_are_rejected() -> None:
    storage = AsyncInMemoryCacheStorage()
    cache = await storage.open("app-conductores-azure-v1")

    with pytest.raises(ValueError):
        await cache.match("/admin")


@pytest.mark.anyio
@travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False)
async def test_sqlite_entries_survive_a_new_storage_instance(use_temp_dir) -> None:
    storage = AsyncSqliteCacheStorage(database_path="swcache.db")
    cache = await storage.open("app-conductores-azure-v1")
    await cache.put("https://territorios.example/", make_response(b"home"))
    await storage.close()

    reopened = AsyncSqliteCacheStorage(database_path="swcache.db")
    try:
        assert await reopened.keys() == ["app-conductores-azure-v1"]
        assert await reopened.count("app-conductores-azure-v1") == 1

        response = await reopened.match("https://territorios.example/")
        assert response is not None
        assert await response.aread() == b"home"
        assert response.metadata == snapshot(
            {
                "swcache_from_cache": True,
                "swcache_created_at": 1704067200.0,
                "swcache_stored": False,
                "swcache_partition": "app-conductores-azure-v1",
            }
        )
    finally:
        await reopened.close()


@pytest.mark.anyio
@storage_factories
async def test_get_does_not_create_partitions(make_storage) -> None:
    storage = await make_storage()
    await storage.open("static-assets-v1")

    assert await storage.get("app-conductores-azure-v1") is None
    assert await storage.keys() == ["static-assets-v1"]

    cache = await storage.get("static-assets-v1")
    assert cache is not None
    assert cache.name == "static-assets-v1"


@pytest.mark.anyio
@storage_factories
async def test_match_does_not_recreate_a_partition_deleted_meanwhile(make_storage) -> None:
    storage = await make_storage()
    await storage.open("app-conductores-azure-v1")

    listed = anyio.Event()
    resume = anyio.Event()
    list_partitions = storage.keys

    async def slow_keys():
        names = await list_partitions()
        listed.set()
        await resume.wait()
        return names

    storage.keys = slow_keys
    results = []

    async def lookup() -> None:
        results.append(await storage.match("https://territorios.example/"))

    async with anyio.create_task_group() as task_group:
        task_group.start_soon(lookup)
        await listed.wait()
        assert await storage.delete("app-conductores-azure-v1") is True
        resume.set()

    assert results == [None]
    assert await list_partitions() == []

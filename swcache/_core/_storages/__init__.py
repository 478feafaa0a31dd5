from swcache._core._storages._async_sqlite import (
    AsyncSqliteCache as AsyncSqliteCache,
    AsyncSqliteCacheStorage as AsyncSqliteCacheStorage,
)
from swcache._core._storages._base import (
    AsyncBaseCache as AsyncBaseCache,
    AsyncBaseCacheStorage as AsyncBaseCacheStorage,
)
from swcache._core._storages._in_memory import (
    AsyncInMemoryCache as AsyncInMemoryCache,
    AsyncInMemoryCacheStorage as AsyncInMemoryCacheStorage,
)

__all__ = (
    "AsyncBaseCache",
    "AsyncBaseCacheStorage",
    "AsyncInMemoryCache",
    "AsyncInMemoryCacheStorage",
    "AsyncSqliteCache",
    "AsyncSqliteCacheStorage",
)

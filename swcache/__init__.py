from swcache._async_controller import (
    AsyncCacheController as AsyncCacheController,
    ControllerHost as ControllerHost,
)
from swcache._config import ControllerConfig as ControllerConfig
from swcache._core._headers import Headers as Headers
from swcache._core._lifecycle import (
    Active as Active,
    AnyLifecycleState as AnyLifecycleState,
    Installing as Installing,
    Redundant as Redundant,
    Waiting as Waiting,
)
from swcache._core._storages import (
    AsyncBaseCache as AsyncBaseCache,
    AsyncBaseCacheStorage as AsyncBaseCacheStorage,
    AsyncInMemoryCacheStorage as AsyncInMemoryCacheStorage,
    AsyncSqliteCacheStorage as AsyncSqliteCacheStorage,
)
from swcache._core.models import (
    CacheEntry as CacheEntry,
    EntryMeta as EntryMeta,
    Request as Request,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from swcache._exceptions import (
    FetchError as FetchError,
    InstallationError as InstallationError,
    LifecycleError as LifecycleError,
    StorageError as StorageError,
    SWCacheError as SWCacheError,
)
from swcache._network import AsyncFetcher as AsyncFetcher, AsyncHttpxFetcher as AsyncHttpxFetcher
from swcache._policies import RoutingPolicy as RoutingPolicy
from swcache._registration import AsyncServiceWorkerRegistration as AsyncServiceWorkerRegistration

__all__ = (
    # Controller
    "AsyncCacheController",
    "ControllerHost",
    "ControllerConfig",
    "RoutingPolicy",
    ## Lifecycle
    "AsyncServiceWorkerRegistration",
    "AnyLifecycleState",
    "Installing",
    "Waiting",
    "Active",
    "Redundant",
    ## Models
    "Request",
    "Response",
    "CacheEntry",
    "EntryMeta",
    "RequestMetadata",
    "ResponseMetadata",
    ## Headers
    "Headers",
    ## Storages
    "AsyncBaseCache",
    "AsyncBaseCacheStorage",
    "AsyncInMemoryCacheStorage",
    "AsyncSqliteCacheStorage",
    # Network
    "AsyncFetcher",
    "AsyncHttpxFetcher",
    # Errors
    "SWCacheError",
    "InstallationError",
    "FetchError",
    "StorageError",
    "LifecycleError",
)

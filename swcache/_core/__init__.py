from swcache._core._headers import Headers as Headers
from swcache._core._lifecycle import (
    Active as Active,
    AnyLifecycleState as AnyLifecycleState,
    Installing as Installing,
    LifecycleState as LifecycleState,
    Redundant as Redundant,
    Waiting as Waiting,
)
from swcache._core.models import (
    CacheEntry as CacheEntry,
    EntryMeta as EntryMeta,
    Request as Request,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)

__all__ = (
    "Headers",
    "LifecycleState",
    "AnyLifecycleState",
    "Installing",
    "Waiting",
    "Active",
    "Redundant",
    "Request",
    "Response",
    "RequestMetadata",
    "ResponseMetadata",
    "CacheEntry",
    "EntryMeta",
)

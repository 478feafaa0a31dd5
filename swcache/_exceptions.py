from __future__ import annotations

__all__ = (
    "SWCacheError",
    "InstallationError",
    "FetchError",
    "StorageError",
    "LifecycleError",
)


class SWCacheError(Exception): ...


class InstallationError(SWCacheError):
    def __init__(self, message: str, partition: str | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.partition = partition
        self.url = url


class FetchError(SWCacheError):
    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class StorageError(SWCacheError): ...


class LifecycleError(SWCacheError): ...

from ._async_httpx import (
    AsyncServiceWorkerClient as AsyncServiceWorkerClient,
    AsyncServiceWorkerTransport as AsyncServiceWorkerTransport,
)

__all__ = ("AsyncServiceWorkerClient", "AsyncServiceWorkerTransport")

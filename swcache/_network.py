from __future__ import annotations

import logging
import types
import typing as t

import httpx

from swcache._core._headers import Headers
from swcache._core.models import Request, Response, ResponseType
from swcache._exceptions import FetchError
from swcache._utils import get_origin, make_async_iterator

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("swcache.network")

__all__ = ("AsyncFetcher", "AsyncHttpxFetcher")

AsyncFetcher = t.Callable[[Request], t.Awaitable[Response]]
"""Anything that sends a request to the network and returns its response."""

# Hop-by-hop or already-applied headers that must not survive a fully buffered body.
_STALE_BODY_HEADERS = ("content-encoding", "transfer-encoding", "content-length")


def classify_response(url: str, origin: str) -> ResponseType:
    """
    Same-origin responses are `basic`, everything else is `cors`.
    """
    try:
        return "basic" if get_origin(url) == origin else "cors"
    except httpx.InvalidURL:
        return "opaque"


class AsyncHttpxFetcher:
    """
    Sends internal requests through an `httpx.AsyncClient`.

    Redirects are followed, the body is buffered, and the response is classified
    against the controller's origin. Any request that does not produce a response,
    including redirect loops and malformed URLs, raises `FetchError`.

    :param origin: The origin same-origin (`basic`) responses are compared with
    :param client: Client to send requests with, defaults to a new one owned by the fetcher
    :param transport: Transport for the owned client, ignored when `client` is given
    """

    def __init__(
        self,
        origin: str,
        client: t.Optional[httpx.AsyncClient] = None,
        transport: t.Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.origin = get_origin(origin)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(transport=transport)

    async def __call__(self, request: Request) -> Response:
        content = None if request.method.upper() in ("GET", "HEAD") else await request.aread()

        try:
            httpx_request = self._client.build_request(
                method=request.method,
                url=request.url,
                headers=request.headers.multi_items(),
                content=content,
            )
            httpx_response = await self._client.send(httpx_request, follow_redirects=True)
            body = await httpx_response.aread()
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.debug(f"Network request for {request.url} failed: {exc!r}")
            raise FetchError(f"Could not fetch {request.url}", url=request.url) from exc

        final_url = str(httpx_response.url)
        headers = Headers.from_items(
            (key, value)
            for key, value in httpx_response.headers.multi_items()
            if key.lower() not in _STALE_BODY_HEADERS
        )
        headers["content-length"] = str(len(body))

        return Response(
            status_code=httpx_response.status_code,
            headers=headers,
            stream=make_async_iterator([body]),
            reason_phrase=httpx_response.reason_phrase,
            type=classify_response(final_url, self.origin),
            url=final_url,
            redirected=bool(httpx_response.history),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "Self":
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()

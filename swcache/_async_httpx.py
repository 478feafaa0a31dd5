from __future__ import annotations

import ssl
import typing as t
import uuid
from typing import AsyncIterable, AsyncIterator, Union, cast, overload

import httpx
from httpx import RequestNotRead

from swcache._core._headers import Headers
from swcache._core.models import Request, RequestDestination, Response
from swcache._exceptions import FetchError
from swcache._network import classify_response
from swcache._registration import AsyncServiceWorkerRegistration
from swcache._utils import get_origin, make_async_iterator

__all__ = ("AsyncServiceWorkerTransport", "AsyncServiceWorkerClient")

# 128 KB
CHUNK_SIZE = 131072

_DESTINATIONS = ("", "document", "script", "style", "image", "font", "manifest")


def _guess_destination(request: httpx.Request) -> RequestDestination:
    destination = request.extensions.get("swcache_destination")
    if destination is not None:
        if destination not in _DESTINATIONS:
            raise ValueError(f"Unknown request destination {destination!r}")
        return cast(RequestDestination, destination)

    # Browsers only send text/html in Accept for top-level navigations.
    if "text/html" in request.headers.get("accept", ""):
        return "document"
    return ""


@overload
def _internal_to_httpx(
    value: Request,
) -> httpx.Request: ...
@overload
def _internal_to_httpx(
    value: Response,
) -> httpx.Response: ...
def _internal_to_httpx(
    value: Union[Request, Response],
) -> Union[httpx.Request, httpx.Response]:
    """
    Convert internal Request/Response to httpx.Request/httpx.Response.
    """
    if isinstance(value, Request):
        return httpx.Request(
            method=value.method,
            url=value.url,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value._aiter_stream()),
            extensions={"swcache_destination": value.destination},
        )

    extensions: t.Dict[str, t.Any] = dict(value.metadata)
    if value.reason_phrase:
        extensions["reason_phrase"] = value.reason_phrase.encode("ascii", errors="replace")
    return httpx.Response(
        status_code=value.status_code,
        headers=value.headers.multi_items(),
        stream=_IteratorStream(value._aiter_stream()),
        extensions=extensions,
    )


@overload
def _httpx_to_internal(
    value: httpx.Request,
) -> Request: ...
@overload
def _httpx_to_internal(
    value: httpx.Response,
) -> Response: ...
def _httpx_to_internal(
    value: Union[httpx.Request, httpx.Response],
) -> Union[Request, Response]:
    """
    Convert httpx.Request/httpx.Response to internal Request/Response.
    """
    headers = Headers.from_items(
        (key, val) for key, val in value.headers.multi_items() if key.lower() != "transfer-encoding"
    )

    if isinstance(value, httpx.Request):
        try:
            stream = make_async_iterator([value.content])
        except RequestNotRead:
            stream = cast(AsyncIterator[bytes], value.stream)

        return Request(
            method=value.method,
            url=str(value.url),
            headers=headers,
            stream=stream,
            destination=_guess_destination(value),
        )

    stream = (
        make_async_iterator([value.content]) if value.is_stream_consumed else value.aiter_raw(chunk_size=CHUNK_SIZE)
    )

    if value.is_stream_consumed and "content-encoding" in headers:
        # The consumed content is already decoded, so the encoding no longer applies.
        del headers["content-encoding"]
        headers["content-length"] = str(len(value.content))

    return Response(
        status_code=value.status_code,
        headers=headers,
        stream=stream,
        reason_phrase=value.reason_phrase,
    )


class _IteratorStream(httpx.AsyncByteStream):
    def __init__(self, iterator: AsyncIterator[bytes]) -> None:
        self.iterator = iterator

    async def __aiter__(self) -> AsyncIterator[bytes]:
        assert isinstance(self.iterator, (AsyncIterator, AsyncIterable))
        async for chunk in self.iterator:
            yield chunk


class AsyncServiceWorkerTransport(httpx.AsyncBaseTransport):
    """
    Makes an httpx client behave like a page controlled by a registration.

    Every request is offered to the controller that controls `client_id`. Requests it
    does not intercept, and every request while no controller is active, go to
    `next_transport`. A request that could be answered neither by the network nor by
    the cache raises `httpx.ConnectError`, the same way an unreachable host does.

    Closing the transport closes the client on the registration, which may let a
    waiting controller activate.
    """

    def __init__(
        self,
        registration: AsyncServiceWorkerRegistration,
        next_transport: httpx.AsyncBaseTransport,
        client_id: t.Optional[str] = None,
    ) -> None:
        self.registration = registration
        self.next_transport = next_transport
        self.client_id = client_id if client_id is not None else uuid.uuid4().hex
        self.registration.add_client(self.client_id)

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        internal_request = _httpx_to_internal(request)
        try:
            internal_response = await self.registration.handle_fetch(
                self.client_id, internal_request, self.request_sender
            )
        except FetchError as exc:
            raise httpx.ConnectError(str(exc), request=request) from exc
        return _internal_to_httpx(internal_response)

    async def aclose(self) -> None:
        await self.registration.remove_client(self.client_id)
        await self.next_transport.aclose()
        await super().aclose()

    async def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx(request)
        httpx_response = await self.next_transport.handle_async_request(httpx_request)
        response = _httpx_to_internal(httpx_response)
        response.url = str(request.url)
        response.type = classify_response(response.url, self._page_origin(request))
        return response

    def _page_origin(self, request: Request) -> str:
        controller = self.registration.controller_for(self.client_id)
        if controller is not None:
            return get_origin(controller.config.origin)
        return get_origin(request.url)


class AsyncServiceWorkerClient(httpx.AsyncClient):
    """
    An `httpx.AsyncClient` that is a client of a service worker registration.

    Extra keyword arguments:
        registration: The registration whose active controller answers the requests.
        client_id: Identifier of this client, generated when omitted.
    """

    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.registration: AsyncServiceWorkerRegistration = kwargs.pop("registration")
        self.client_id: str = kwargs.pop("client_id", None) or uuid.uuid4().hex
        super().__init__(*args, **kwargs)

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        if isinstance(transport, AsyncServiceWorkerTransport):
            return transport

        return AsyncServiceWorkerTransport(
            registration=self.registration,
            next_transport=transport
            if transport is not None
            else httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            ),
            client_id=self.client_id,
        )

    def _init_proxy_transport(
        self,
        proxy: httpx.Proxy,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        return AsyncServiceWorkerTransport(
            registration=self.registration,
            next_transport=httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
                proxy=proxy,
            ),
            client_id=self.client_id,
        )

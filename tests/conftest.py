import os
import typing as t

import httpx
import pytest

from swcache import AsyncHttpxFetcher, ControllerConfig
from swcache._utils import resolve_url

ORIGIN = "https://territorios.example"


class FakeNetwork:
    """
    An in-process origin server that can be taken offline.

    Routes map absolute URLs to bodies (served with status 200) or to status codes.
    Anything else answers 404.
    """

    def __init__(self, routes: t.Optional[t.Dict[str, t.Union[bytes, int]]] = None) -> None:
        self.routes: t.Dict[str, t.Union[bytes, int]] = dict(routes or {})
        self.online = True
        self.calls: t.List[str] = []
        self._fetcher: t.Optional[AsyncHttpxFetcher] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if not self.online:
            raise httpx.ConnectError("Network is unreachable", request=request)

        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, content=b"Not Found")
        if isinstance(route, int):
            return httpx.Response(route)
        return httpx.Response(200, headers={"content-type": "text/plain"}, content=route)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def fetcher(self) -> AsyncHttpxFetcher:
        if self._fetcher is None:
            self._fetcher = AsyncHttpxFetcher(ORIGIN, transport=self.transport)
        return self._fetcher

    def serve_manifest(self, config: ControllerConfig) -> None:
        for url in (*config.app_shell_urls, *config.static_asset_urls):
            absolute = resolve_url(config.origin, url)
            self.routes.setdefault(absolute, f"content of {url}".encode())


@pytest.fixture()
def config() -> ControllerConfig:
    return ControllerConfig(
        origin=ORIGIN,
        app_shell_urls=("/", "/admin"),
        static_asset_urls=("/favicon.ico",),
    )


@pytest.fixture()
def network(config: ControllerConfig) -> FakeNetwork:
    fake = FakeNetwork()
    fake.serve_manifest(config)
    return fake


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)

from __future__ import annotations

import logging
import types
import typing as t
from contextlib import AsyncExitStack

import anyio
from anyio.abc import TaskGroup

from swcache._config import ControllerConfig
from swcache._core._headers import Headers
from swcache._core._lifecycle import AnyLifecycleState, Installing
from swcache._core._storages._base import AsyncBaseCacheStorage
from swcache._core._storages._in_memory import AsyncInMemoryCacheStorage
from swcache._core.models import Request, Response, ResponseMetadata
from swcache._exceptions import FetchError, InstallationError, StorageError
from swcache._network import AsyncFetcher, AsyncHttpxFetcher
from swcache._policies import RoutingPolicy
from swcache._utils import generate_http_date, make_async_iterator, partition, resolve_url

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("swcache.controller")

__all__ = ("AsyncCacheController", "ControllerHost", "SKIP_WAITING", "BACKGROUND_SYNC_TAG")

SKIP_WAITING = "SKIP_WAITING"
BACKGROUND_SYNC_TAG = "background-sync"


class ControllerHost(t.Protocol):
    """
    The runtime a controller is registered with.

    The controller calls back into it when it wants to skip the waiting phase
    or take over the pages that are already open.
    """

    async def skip_waiting(self, controller: "AsyncCacheController") -> None: ...

    async def claim_clients(self, controller: "AsyncCacheController") -> None: ...


class AsyncCacheController:
    """
    An offline-first cache sitting between pages and the network.

    The controller only exposes lifecycle handlers: `on_install`, `on_activate`,
    `on_fetch`, `on_message` and `on_sync`. A host (see `AsyncServiceWorkerRegistration`)
    decides when each of them runs.

    Cache writes triggered by `on_fetch` run in the background and never delay or fail
    the response, so the controller must be entered as an async context manager:

        async with AsyncCacheController(config) as controller:
            response = await controller.on_fetch(request)

    Args:
        config: Version, manifest and routing options. Defaults to `ControllerConfig()`.
        storage: Where partitions live. Defaults to a fresh `AsyncInMemoryCacheStorage`.
        fetcher: Callable used to reach the network. Defaults to an `AsyncHttpxFetcher`
            bound to the configured origin.
        policy: Routing policy. Defaults to `RoutingPolicy(config)`.
    """

    def __init__(
        self,
        config: t.Optional[ControllerConfig] = None,
        storage: t.Optional[AsyncBaseCacheStorage] = None,
        fetcher: t.Optional[AsyncFetcher] = None,
        policy: t.Optional[RoutingPolicy] = None,
    ) -> None:
        self.config = config if config is not None else ControllerConfig()
        self.storage = storage if storage is not None else AsyncInMemoryCacheStorage()
        self._owned_fetcher = AsyncHttpxFetcher(self.config.origin) if fetcher is None else None
        self.fetch: AsyncFetcher = fetcher if fetcher is not None else t.cast(AsyncFetcher, self._owned_fetcher)
        self.policy = policy if policy is not None else RoutingPolicy(self.config)

        self.lifecycle: AnyLifecycleState = Installing()
        self.skip_waiting_requested = False
        self.clients_claimed = False

        self._host: t.Optional[ControllerHost] = None
        self._exit_stack: t.Optional[AsyncExitStack] = None
        self._task_group: t.Optional[TaskGroup] = None
        self._pending_writes: t.Set[anyio.Event] = set()

    def __repr__(self) -> str:
        return f"<AsyncCacheController version={self.config.version!r} state={self.lifecycle.name!r}>"

    @property
    def version(self) -> str:
        return self.config.version

    def attach(self, host: ControllerHost) -> None:
        self._host = host

    # Lifecycle handlers

    async def on_install(self) -> None:
        """
        Populates the primary and static partitions and opens the api partition, concurrently.

        Raises:
            InstallationError: When any manifest URL could not be fetched or stored.
                Nothing from that partition's manifest is written.
        """
        logger.info(f"Installing version {self.config.version}.")
        errors: t.List[InstallationError] = []

        async def collect(step: t.Callable[..., t.Awaitable[None]], *args: t.Any) -> None:
            try:
                await step(*args)
            except InstallationError as exc:
                errors.append(exc)

        async with anyio.create_task_group() as task_group:
            task_group.start_soon(collect, self._precache, self.config.primary_cache_name, self.config.app_shell_urls)
            task_group.start_soon(
                collect, self._precache, self.config.static_cache_name, self.config.static_asset_urls
            )
            task_group.start_soon(collect, self._precache, self.config.api_cache_name, ())

        if errors:
            logger.error(f"Installation of version {self.config.version} failed: {errors[0]}")
            raise errors[0]

        logger.info(f"Version {self.config.version} installed.")
        if self.config.skip_waiting_on_install:
            await self.skip_waiting()

    async def on_activate(self) -> None:
        """
        Deletes the partitions of other versions, then takes control of every open page.
        """
        logger.info(f"Activating version {self.config.version}.")
        stale, _ = partition(await self.storage.keys(), self._is_stale_partition)

        async with anyio.create_task_group() as task_group:
            for name in stale:
                logger.info(f"Deleting stale partition '{name}'.")
                task_group.start_soon(self._delete_stale_partition, name)

        await self.claim_clients()
        logger.info(f"Version {self.config.version} activated.")

    async def on_fetch(self, request: Request) -> t.Optional[Response]:
        """
        Answers a request issued by a controlled page.

        Returns None when the request is not intercepted (non-GET methods or non-http(s)
        schemes); the host is expected to send it to the network itself.

        Raises:
            FetchError: When a network-first request fails, nothing is cached for it,
                and it is not a navigation that can fall back to the offline document.
        """
        self._ensure_started()

        if not self.policy.is_interceptable(request):
            return None

        if self.policy.choose_strategy(request) == "cache-first":
            return await self.cache_first(request)
        return await self.network_first(request)

    async def on_message(self, message: t.Any) -> None:
        if isinstance(message, t.Mapping) and message.get("type") == SKIP_WAITING:
            logger.info(f"Forcing activation of version {self.config.version}.")
            await self.skip_waiting()
            return
        logger.debug(f"Ignoring unknown message {message!r}.")

    async def on_sync(self, tag: str) -> None:
        if tag != BACKGROUND_SYNC_TAG:
            logger.debug(f"Ignoring sync event with tag {tag!r}.")
            return
        logger.info("Running background synchronization.")
        # Nothing is queued while offline yet, so there is nothing to replay.
        logger.info("Background synchronization completed.")

    # Strategies

    async def cache_first(self, request: Request) -> Response:
        cached = await self.storage.match(request)
        if cached is not None:
            logger.debug(f"Serving {request.url} from the cache.")
            return cached

        try:
            response = await self.fetch(request)
        except FetchError as exc:
            logger.warning(f"Cache-first request for {request.url} failed: {exc}")
            cached = await self.storage.match(request)
            if cached is not None:
                return cached
            return self._offline_response(request)

        self._mark_from_network(response)
        if self.policy.is_storable(request, response):
            await self._store_in_background(self.config.static_cache_name, request, response)
        return response

    async def network_first(self, request: Request) -> Response:
        try:
            response = await self.fetch(request)
        except FetchError:
            logger.debug(f"Network request for {request.url} failed, looking in the cache.")

            cached = await self.storage.match(request)
            if cached is not None:
                return cached

            if request.is_navigation:
                fallback = await self.storage.match(self._offline_fallback_request())
                if fallback is not None:
                    logger.debug(f"Serving the offline document instead of {request.url}.")
                    fallback.metadata.update(ResponseMetadata(swcache_offline_fallback=True))  # type: ignore
                    return fallback
            raise

        self._mark_from_network(response)
        if self.policy.is_storable(request, response):
            await self._store_in_background(self.config.primary_cache_name, request, response)
        return response

    # Host callbacks

    async def skip_waiting(self) -> None:
        self.skip_waiting_requested = True
        if self._host is not None:
            await self._host.skip_waiting(self)

    async def claim_clients(self) -> None:
        self.clients_claimed = True
        if self._host is not None:
            await self._host.claim_clients(self)

    # Background writes

    async def wait_for_background_tasks(self) -> None:
        """
        Waits until every cache write scheduled so far has settled.
        """
        for done in list(self._pending_writes):
            await done.wait()

    async def _store_in_background(self, name: str, request: Request, response: Response) -> None:
        assert self._task_group is not None
        stored_copy = await response.aclone()
        done = anyio.Event()
        self._pending_writes.add(done)
        self._task_group.start_soon(self._store, name, request, stored_copy, done)
        response.metadata.update(ResponseMetadata(swcache_stored=True))  # type: ignore

    async def _store(self, name: str, request: Request, response: Response, done: anyio.Event) -> None:
        try:
            cache = await self.storage.open(name)
            await cache.put(request, response)
        except Exception as exc:
            # A failed write must never reach the page that triggered it.
            logger.warning(f"Could not cache {request.url} in '{name}': {exc!r}")
        finally:
            self._pending_writes.discard(done)
            done.set()

    # Helpers

    async def _precache(self, name: str, urls: t.Sequence[str]) -> None:
        try:
            cache = await self.storage.open(name)
        except StorageError as exc:
            raise InstallationError(f"Could not open the '{name}' partition", partition=name) from exc

        requests = [Request(method="GET", url=resolve_url(self.config.origin, url)) for url in urls]
        responses: t.Dict[int, Response] = {}
        failures: t.List[InstallationError] = []

        async def fetch_one(index: int, request: Request) -> None:
            try:
                response = await self.fetch(request)
            except FetchError as exc:
                error = InstallationError(
                    f"Could not fetch {request.url} into '{name}'", partition=name, url=request.url
                )
                error.__cause__ = exc
                failures.append(error)
                return

            if not response.ok:
                failures.append(
                    InstallationError(
                        f"{request.url} answered with status {response.status_code} while populating '{name}'",
                        partition=name,
                        url=request.url,
                    )
                )
                return

            await response.aread()
            responses[index] = response

        async with anyio.create_task_group() as task_group:
            for index, request in enumerate(requests):
                task_group.start_soon(fetch_one, index, request)

        if failures:
            raise failures[0]

        for index, request in enumerate(requests):
            try:
                await cache.put(request, responses[index])
            except StorageError as exc:
                raise InstallationError(
                    f"Could not store {request.url} into '{name}'", partition=name, url=request.url
                ) from exc

        logger.debug(f"Populated '{name}' with {len(requests)} entries.")

    async def _delete_stale_partition(self, name: str) -> None:
        try:
            await self.storage.delete(name)
        except StorageError as exc:
            # Left for the next activation to delete.
            logger.error(f"Could not delete stale partition '{name}': {exc!r}")

    def _is_stale_partition(self, name: str) -> bool:
        if name in self.config.cache_names:
            return False
        if self.config.owned_prefixes is None:
            return True
        return name.startswith(self.config.owned_prefixes)

    def _offline_fallback_request(self) -> Request:
        return Request(
            method="GET",
            url=resolve_url(self.config.origin, self.config.offline_fallback_url),
            destination="document",
        )

    def _offline_response(self, request: Request) -> Response:
        body = self.config.offline_message.encode("utf-8")
        return Response(
            status_code=503,
            reason_phrase="Service Unavailable",
            headers=Headers(
                {
                    "content-type": "text/plain; charset=utf-8",
                    "content-length": str(len(body)),
                    "date": generate_http_date(),
                }
            ),
            stream=make_async_iterator([body]),
            type="default",
            url=request.url,
            metadata=ResponseMetadata(swcache_from_cache=False, swcache_stored=False),
        )

    @staticmethod
    def _mark_from_network(response: Response) -> None:
        response.metadata.update(ResponseMetadata(swcache_from_cache=False, swcache_stored=False))  # type: ignore

    def _ensure_started(self) -> None:
        if self._task_group is None:
            raise RuntimeError(
                "The controller schedules cache writes in the background and must be used as an "
                "async context manager: `async with AsyncCacheController(...) as controller: ...`"
            )

    async def aclose(self) -> None:
        if self._exit_stack is not None:
            exit_stack, self._exit_stack = self._exit_stack, None
            await exit_stack.aclose()
            self._task_group = None
        if self._owned_fetcher is not None:
            await self._owned_fetcher.aclose()

    async def __aenter__(self) -> "Self":
        self._exit_stack = AsyncExitStack()
        self._task_group = await self._exit_stack.enter_async_context(anyio.create_task_group())
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()

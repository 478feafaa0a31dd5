from __future__ import annotations

import logging
import typing as t

import anyio

from swcache._async_controller import AsyncCacheController
from swcache._config import ControllerConfig
from swcache._core._lifecycle import Active, Installing, Redundant, Waiting
from swcache._core._storages._base import AsyncBaseCacheStorage
from swcache._core._storages._in_memory import AsyncInMemoryCacheStorage
from swcache._core.models import Request, Response
from swcache._exceptions import InstallationError, LifecycleError
from swcache._network import AsyncFetcher

logger = logging.getLogger("swcache.registration")

__all__ = ("AsyncServiceWorkerRegistration",)


class AsyncServiceWorkerRegistration:
    """
    Hosts successive controller versions for one origin.

    The registration runs the install and activate handlers, keeps the
    `installing`, `waiting` and `active` slots up to date, and remembers which
    controller answers the requests of every open client (page).

    A newly installed version activates right away when it asked to skip waiting
    or when no client is controlled by the current version. Otherwise it waits
    until the last of those clients goes away, or until it receives a
    `{"type": "SKIP_WAITING"}` message.
    """

    def __init__(self, storage: t.Optional[AsyncBaseCacheStorage] = None) -> None:
        self.storage = storage if storage is not None else AsyncInMemoryCacheStorage()
        self.installing: t.Optional[AsyncCacheController] = None
        self.waiting: t.Optional[AsyncCacheController] = None
        self.active: t.Optional[AsyncCacheController] = None
        self._clients: t.Dict[str, t.Optional[AsyncCacheController]] = {}
        self._lock = anyio.Lock()

    def create_controller(
        self,
        config: t.Optional[ControllerConfig] = None,
        fetcher: t.Optional[AsyncFetcher] = None,
    ) -> AsyncCacheController:
        """
        Builds a controller that shares this registration's storage.
        """
        return AsyncCacheController(config=config, storage=self.storage, fetcher=fetcher)

    async def register(self, controller: AsyncCacheController) -> AsyncCacheController:
        """
        Installs the controller and, when nothing holds it back, activates it.

        Raises:
            InstallationError: The controller is left redundant and the current
                active controller keeps serving.
        """
        async with self._lock:
            controller.attach(self)
            installing = Installing()
            controller.lifecycle = installing
            self.installing = controller

            try:
                await controller.on_install()
            except Exception:
                self.installing = None
                controller.lifecycle = installing.next(
                    installed=False, skip_waiting=False, has_controlled_clients=False
                )
                logger.warning(f"Version {controller.version} failed to install and is now redundant.")
                raise

            self.installing = None
            if self.waiting is not None and isinstance(self.waiting.lifecycle, Waiting):
                logger.info(f"Version {self.waiting.version} was replaced before it could activate.")
                self.waiting.lifecycle = self.waiting.lifecycle.replaced()
                self.waiting = None

            state = installing.next(
                installed=True,
                skip_waiting=controller.skip_waiting_requested,
                has_controlled_clients=self._has_controlled_clients(self.active),
            )
            if isinstance(state, Active):
                await self._activate(controller)
            else:
                logger.info(f"Version {controller.version} is waiting for the previous version's clients to close.")
                controller.lifecycle = state
                self.waiting = controller

            return controller

    # Host callbacks, invoked by the controllers themselves

    async def skip_waiting(self, controller: AsyncCacheController) -> None:
        if controller is not self.waiting or not isinstance(controller.lifecycle, Waiting):
            # Still installing: `register` reads the flag once installation settles.
            return

        state = controller.lifecycle.next(
            skip_waiting=True, has_controlled_clients=self._has_controlled_clients(self.active)
        )
        if isinstance(state, Active):
            await self._activate(controller)

    async def claim_clients(self, controller: AsyncCacheController) -> None:
        if controller is not self.active:
            raise LifecycleError(f"Version {controller.version} cannot claim clients since it is not active")

        for client_id in self._clients:
            self._clients[client_id] = controller
        logger.debug(f"Version {controller.version} now controls {len(self._clients)} client(s).")

    # Clients

    def add_client(self, client_id: str) -> t.Optional[AsyncCacheController]:
        """
        Opens a client. It is controlled by the active controller, if any.
        """
        self._clients[client_id] = self.active
        return self.active

    async def remove_client(self, client_id: str) -> None:
        """
        Closes a client. The waiting controller activates once the active one controls no client.
        """
        self._clients.pop(client_id, None)

        if self.waiting is None or not isinstance(self.waiting.lifecycle, Waiting):
            return

        state = self.waiting.lifecycle.next(
            skip_waiting=self.waiting.skip_waiting_requested,
            has_controlled_clients=self._has_controlled_clients(self.active),
        )
        if isinstance(state, Active):
            await self._activate(self.waiting)

    def controller_for(self, client_id: str) -> t.Optional[AsyncCacheController]:
        return self._clients.get(client_id)

    @property
    def clients(self) -> t.List[str]:
        return list(self._clients)

    # Events

    async def post_message(self, message: t.Any) -> None:
        """
        Delivers a page message to the waiting controller, then to the active one.
        """
        recipients = [controller for controller in (self.waiting, self.active) if controller is not None]
        if not recipients:
            raise LifecycleError("There is no controller to deliver the message to")

        for controller in recipients:
            await controller.on_message(message)

    async def handle_fetch(
        self,
        client_id: t.Optional[str],
        request: Request,
        fetcher: AsyncFetcher,
    ) -> Response:
        """
        Answers a request issued by a client.

        Requests from uncontrolled clients, and requests the controller does not
        intercept, go straight to `fetcher`.
        """
        controller = self.controller_for(client_id) if client_id is not None else None

        if controller is not None and isinstance(controller.lifecycle, Active):
            if client_id is not None:
                request.metadata = {**request.metadata, "swcache_client_id": client_id}
            response = await controller.on_fetch(request)
            if response is not None:
                return response

        return await fetcher(request)

    async def sync(self, tag: str) -> None:
        if self.active is None:
            raise LifecycleError("There is no active controller to run the sync event")
        await self.active.on_sync(tag)

    # Helpers

    async def _activate(self, controller: AsyncCacheController) -> None:
        previous = self.active
        if previous is not None and previous is not controller:
            if isinstance(previous.lifecycle, Active):
                previous.lifecycle = previous.lifecycle.next(replaced=True)
            else:
                previous.lifecycle = Redundant()
            logger.info(f"Version {previous.version} was replaced by version {controller.version}.")

        if self.waiting is controller:
            self.waiting = None

        controller.lifecycle = Active()
        self.active = controller
        await controller.on_activate()

    def _has_controlled_clients(self, controller: t.Optional[AsyncCacheController]) -> bool:
        if controller is None:
            return False
        return any(owner is controller for owner in self._clients.values())

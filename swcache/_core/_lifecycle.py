"""
Lifecycle of a cache controller version.

    installing ──> waiting ──> active ──> redundant
         │                       ▲
         ├───────────────────────┘  (eager activation / no controlled clients)
         └──> redundant             (failed installation)

Each state is an immutable value whose `next` method computes the following state
from the facts the host knows at that point. Hosts never mutate states directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Union

logger = logging.getLogger("swcache.registration")

StateName = Literal["installing", "waiting", "active", "redundant"]


@dataclass(frozen=True)
class LifecycleState(ABC):
    name: ClassVar[StateName]

    @abstractmethod
    def next(self, *args: Any, **kwargs: Any) -> "AnyLifecycleState":
        raise NotImplementedError("Subclasses must implement this method")


@dataclass(frozen=True)
class Installing(LifecycleState):
    name: ClassVar[StateName] = "installing"

    def next(
        self,
        installed: bool,
        skip_waiting: bool,
        has_controlled_clients: bool,
    ) -> Union["Waiting", "Active", "Redundant"]:
        """
        Leaves the installing state once the install handler settled.

        Args:
            installed: Whether every partition was populated.
            skip_waiting: Whether the controller asked to bypass the waiting gate.
            has_controlled_clients: Whether the currently active version still controls pages.
        """
        if not installed:
            logger.debug("Installation failed, the controller becomes redundant.")
            return Redundant()

        if skip_waiting or not has_controlled_clients:
            return Active()

        logger.debug("Waiting for the pages controlled by the previous version to close.")
        return Waiting()


@dataclass(frozen=True)
class Waiting(LifecycleState):
    name: ClassVar[StateName] = "waiting"

    def next(self, skip_waiting: bool, has_controlled_clients: bool) -> Union["Waiting", "Active", "Redundant"]:
        if skip_waiting or not has_controlled_clients:
            return Active()
        return self

    def replaced(self) -> "Redundant":
        """A newer version finished installing while this one was still waiting."""
        return Redundant()


@dataclass(frozen=True)
class Active(LifecycleState):
    name: ClassVar[StateName] = "active"

    def next(self, replaced: bool) -> Union["Active", "Redundant"]:
        if replaced:
            return Redundant()
        return self


@dataclass(frozen=True)
class Redundant(LifecycleState):
    name: ClassVar[StateName] = "redundant"

    def next(self) -> "Redundant":
        return self


AnyLifecycleState = Union[Installing, Waiting, Active, Redundant]

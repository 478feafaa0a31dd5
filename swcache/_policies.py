from __future__ import annotations

import logging
import typing as t

import httpx

from swcache._config import ControllerConfig
from swcache._core.models import Request, Response
from swcache._utils import get_scheme

logger = logging.getLogger("swcache.controller")

__all__ = ("RoutingPolicy", "Strategy", "SUPPORTED_SCHEMES")

Strategy = t.Literal["cache-first", "network-first"]
SUPPORTED_SCHEMES = ("http", "https")


class RoutingPolicy:
    """
    Decides which requests a controller answers, with which strategy, and what it may store.

    Cache-first serves static assets (by path suffix) and allowlisted CDN hosts.
    Everything else is network-first.
    """

    def __init__(self, config: ControllerConfig) -> None:
        self._static_extensions = tuple(config.static_extensions)
        self._cdn_hosts = tuple(host.lower() for host in config.cdn_hosts)
        self._cacheable_status_codes = list(config.cacheable_status_codes)
        self._cacheable_response_types = list(config.cacheable_response_types)

    def is_interceptable(self, request: Request) -> bool:
        if request.method.upper() != "GET":
            logger.debug(f"Not intercepting {request.method} {request.url} since only GET requests are handled.")
            return False

        scheme = get_scheme(request.url)
        if scheme not in SUPPORTED_SCHEMES:
            logger.debug(f"Not intercepting {request.url} since the '{scheme}' scheme is not supported.")
            return False

        return True

    def is_cdn_host(self, host: str) -> bool:
        host = host.lower()
        return any(host == cdn_host or host.endswith("." + cdn_host) for cdn_host in self._cdn_hosts)

    def choose_strategy(self, request: Request) -> Strategy:
        url = httpx.URL(request.url)

        if request.method.upper() == "GET" and (
            url.path.endswith(self._static_extensions) or self.is_cdn_host(url.host)
        ):
            logger.debug(f"Routing {request.url} through the cache-first strategy.")
            return "cache-first"

        logger.debug(f"Routing {request.url} through the network-first strategy.")
        return "network-first"

    def is_storable(self, request: Request, response: Response) -> bool:
        """
        Determines whether a copy of the response may be written to a partition.

        Only GET requests over http(s) whose response has one of the cacheable
        status codes and response types are stored.
        """
        if request.method.upper() != "GET":
            logger.debug(f"Not storing {request.url} since the request method ({request.method}) is not GET.")
            return False

        if get_scheme(request.url) not in SUPPORTED_SCHEMES:
            logger.debug(f"Not storing {request.url} since its scheme is not supported.")
            return False

        if response.status_code not in self._cacheable_status_codes:
            logger.debug(
                f"Not storing {request.url} since its status code ({response.status_code})"
                " is not in the list of cacheable status codes."
            )
            return False

        if response.type not in self._cacheable_response_types:
            logger.debug(
                f"Not storing {request.url} since its response type ({response.type})"
                " is not in the list of cacheable response types."
            )
            return False

        return True

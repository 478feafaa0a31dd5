from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

__all__ = ("ControllerConfig",)

DEFAULT_APP_SHELL_URLS = ("/", "/admin", "/diagnostico", "/enhanced", "/manifest.json", "/offline.html")
DEFAULT_STATIC_ASSET_URLS = ("/favicon.ico", "/icon-192.png", "/icon-512.png")
DEFAULT_CDN_HOSTS = ("cdn.tailwindcss.com", "gstatic.com")
DEFAULT_STATIC_EXTENSIONS = (".js", ".css", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".woff", ".woff2")


@dataclass
class ControllerConfig:
    """
    Everything a cache controller version needs to know about the application it serves.

    Attributes:
    ----------
    origin : str
        The origin the controller is scoped to, e.g. `https://territorios.example.org`.
        Relative manifest URLs resolve against it and responses from it are classified as `basic`.

    version : str
        Suffix of every partition name. Bumping it is the only way to invalidate cached entries:
        the next activation deletes the partitions of every other version.

        Examples:
        --------
        >>> ControllerConfig(version="v2").primary_cache_name
        'app-conductores-azure-v2'

    app_shell_urls / static_asset_urls : tuple[str, ...]
        URLs fetched during installation into the primary and static partitions respectively.
        A single unreachable URL fails the whole partition.

    cdn_hosts : tuple[str, ...]
        Hosts served cache-first. A host matches an entry when it is equal to it or is a subdomain of it.
        Their responses are cross-origin (`cors`), so they are only stored when `"cors"` is added to
        `cacheable_response_types`. Otherwise every request to them goes to the network, and an
        offline miss gets the 503 response.

    static_extensions : tuple[str, ...]
        Path suffixes served cache-first.

    offline_fallback_url : str
        Document returned to navigations when both the network and the cache fail.

    owned_prefixes : tuple[str, ...] | None
        When set, activation only deletes stale partitions whose name starts with one of these prefixes.
        When None, every partition that does not belong to the current version is deleted.

    skip_waiting_on_install : bool
        When True, a successfully installed controller activates without waiting for the pages
        controlled by the previous version to close.
    """

    origin: str = "http://localhost:3000"
    version: str = "v1"
    app_name: str = "app-conductores-azure"
    static_prefix: str = "static-assets"
    api_prefix: str = "api-cache"
    app_shell_urls: Tuple[str, ...] = DEFAULT_APP_SHELL_URLS
    static_asset_urls: Tuple[str, ...] = DEFAULT_STATIC_ASSET_URLS
    cdn_hosts: Tuple[str, ...] = DEFAULT_CDN_HOSTS
    static_extensions: Tuple[str, ...] = DEFAULT_STATIC_EXTENSIONS
    offline_fallback_url: str = "/"
    offline_message: str = "Recurso no disponible offline"
    owned_prefixes: Optional[Tuple[str, ...]] = None
    skip_waiting_on_install: bool = True
    cacheable_status_codes: List[int] = field(default_factory=lambda: [200])
    cacheable_response_types: List[str] = field(default_factory=lambda: ["basic"])

    def __post_init__(self) -> None:
        if not self.version:
            raise ValueError("The controller version must not be empty")
        self.origin = self.origin.rstrip("/")

    @property
    def primary_cache_name(self) -> str:
        return f"{self.app_name}-{self.version}"

    @property
    def static_cache_name(self) -> str:
        return f"{self.static_prefix}-{self.version}"

    @property
    def api_cache_name(self) -> str:
        return f"{self.api_prefix}-{self.version}"

    @property
    def cache_names(self) -> Tuple[str, str, str]:
        return (self.primary_cache_name, self.static_cache_name, self.api_cache_name)

    @classmethod
    def from_env(cls, **overrides: object) -> "ControllerConfig":
        """
        Builds a configuration, letting environment variables override the defaults.

        Recognized variables: `SWCACHE_ORIGIN`, `SWCACHE_VERSION`, `SWCACHE_APP_NAME`.
        Keyword arguments win over both.
        """
        values: dict[str, object] = {}
        if "SWCACHE_ORIGIN" in os.environ:
            values["origin"] = os.environ["SWCACHE_ORIGIN"]
        if "SWCACHE_VERSION" in os.environ:
            values["version"] = os.environ["SWCACHE_VERSION"]
        if "SWCACHE_APP_NAME" in os.environ:
            values["app_name"] = os.environ["SWCACHE_APP_NAME"]
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

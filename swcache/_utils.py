from __future__ import annotations

import typing as tp
from email.utils import formatdate
from pathlib import Path
from typing import AsyncIterator, Iterable

import httpx

if tp.TYPE_CHECKING:  # pragma: no cover
    from swcache._core.models import Request

T = tp.TypeVar("T")


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


def partition(iterable: tp.Iterable[T], predicate: tp.Callable[[T], bool]) -> tp.Tuple[tp.List[T], tp.List[T]]:
    """
    Partition an iterable into two lists: one for matching items and one for non-matching items.

    Example:
        ```
        stale, current = partition(cache_names, lambda name: name not in expected)
        ```
    """
    matching, non_matching = [], []
    for item in iterable:
        if predicate(item):
            matching.append(item)
        else:
            non_matching.append(item)
    return matching, non_matching


def get_origin(url: str) -> str:
    """
    Returns the origin (scheme, host and non-default port) of an absolute URL.

    Examples:
        >>> get_origin("https://example.com/admin?x=1")
        'https://example.com'
        >>> get_origin("http://localhost:3000/")
        'http://localhost:3000'
    """
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin += f":{parsed.port}"
    return origin


def get_scheme(url: str) -> str:
    return url.split(":", 1)[0].lower() if ":" in url else ""


def resolve_url(base: str, url: str) -> str:
    """
    Resolves `url` against `base`. Absolute URLs are returned untouched.
    """
    if get_scheme(url) in ("http", "https"):
        return url
    return str(httpx.URL(base).join(url))


def strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


def generate_key(request: "Request") -> str:
    """
    Builds the identity under which a request is stored: the method and the URL without its fragment.

    Example output: 'GET https://example.com/admin'
    """
    return f"{request.method.upper()} {strip_fragment(request.url)}"


def ensure_cache_dict(base_path: Path | None = None) -> Path:
    _base_path = base_path if base_path is not None else Path(".cache/swcache")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by swcache\n*")
    return _base_path


def generate_http_date() -> str:
    """
    Generate a Date header value for HTTP responses.
    Returns date in RFC 1123 format (required by HTTP/1.1).

    Example output: 'Sun, 26 Oct 2025 12:34:56 GMT'
    """
    return formatdate(timeval=None, localtime=False, usegmt=True)

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable
from urllib.parse import ParseResult, urlparse, urlunparse

_DEFAULT_PORTS = {"http": "80", "https": "443"}


def normalize_url(raw_url: str) -> str:
    """Normalize a URL for de-duplication.

    - Lowercases scheme + hostname.
    - Strips fragments.
    - Keeps path and query untouched; a trailing slash may be significant.
    """

    parsed: ParseResult = urlparse(raw_url.strip())
    scheme = (parsed.scheme or "").lower()
    netloc = (parsed.netloc or "").lower()

    parsed = parsed._replace(
        scheme=scheme,
        netloc=netloc,
        fragment="",
    )
    return urlunparse(parsed)


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def get_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` with default ports dropped."""

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return url
    scheme = (parsed.scheme or "").lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        return url
    if port is not None and str(port) != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def is_same_origin(url_a: str, url_b: str) -> bool:
    return get_origin(url_a) == get_origin(url_b)


def normalize_patterns(patterns: Iterable[str]) -> list[str]:
    """Anchor glob patterns at the path root.

    ``docs`` becomes ``/docs`` and a trailing slash matches the whole
    directory, so ``/api/`` becomes ``/api/**``.
    """

    out: list[str] = []
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        if not pattern.startswith("/") and not pattern.startswith("*"):
            pattern = "/" + pattern
        if pattern.endswith("/"):
            pattern += "**"
        out.append(pattern)
    return out


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a path glob: ``*`` and ``?`` stay within one segment, ``**``
    spans segments, and a trailing ``/**`` also matches the directory itself.
    """

    out: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("/**", i) and i + 3 == len(pattern):
            out.append("(?:/.*)?")
            i += 3
        elif pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out))


def _path_matches(path: str, patterns: list[str]) -> bool:
    return any(glob_to_regex(pat).fullmatch(path) for pat in patterns)


def url_matches_patterns(
    url: str,
    include: list[str],
    exclude: list[str],
) -> bool:
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return False
    if include and not _path_matches(path, include):
        return False
    if exclude and _path_matches(path, exclude):
        return False
    return True


def filter_by_patterns(
    urls: Iterable[str],
    include: list[str],
    exclude: list[str],
) -> list[str]:
    return [u for u in urls if url_matches_patterns(u, include, exclude)]

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from .errors import CrawlError, ManifestError
from .http_client import HttpClient
from .urls import normalize_url

logger = logging.getLogger(__name__)

SITEMAP_RETRIES = 2


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def _parse(xml: str) -> ET.Element:
    try:
        return ET.fromstring(xml.strip())
    except ET.ParseError as e:
        raise ManifestError(f"Malformed sitemap XML: {e}") from e


def _locs(root: ET.Element, entry_name: str) -> list[str]:
    out: list[str] = []
    for entry in root:
        if _local(entry.tag) != entry_name:
            continue
        for child in entry:
            if _local(child.tag) == "loc" and (child.text or "").strip():
                out.append(child.text.strip())
    return out


def is_sitemap_index(xml: str) -> bool:
    return _local(_parse(xml).tag) == "sitemapindex"


def extract_sitemap_urls(xml: str) -> list[str]:
    """Page URLs of a ``<urlset>``, in document order."""

    return _locs(_parse(xml), "url")


def extract_sitemap_index_urls(xml: str) -> list[str]:
    """Child sitemap URLs of a ``<sitemapindex>``, in document order."""

    return _locs(_parse(xml), "sitemap")


def resolve_sitemap(http: HttpClient, url: str) -> list[str]:
    """Fetch a sitemap and return every page URL it (transitively) lists.

    Index documents are expanded depth-first in document order. Each sitemap
    is expanded at most once, so indexes referencing each other terminate.
    Unreadable child sitemaps are skipped; an unreadable root raises
    ``ManifestError``.
    """

    seen: set[str] = set()
    return _expand(http, normalize_url(url), seen, is_root=True)


def _expand(
    http: HttpClient,
    url: str,
    seen: set[str],
    *,
    is_root: bool,
) -> list[str]:
    seen.add(url)
    try:
        res = http.get(url, retries=SITEMAP_RETRIES)
        root = _parse(res.body)
    except CrawlError as e:
        if is_root:
            raise ManifestError(
                f"Failed to fetch sitemap: {e}", url, e.status_code
            ) from e
        logger.warning("Skipping child sitemap %s: %s", url, e)
        return []

    if _local(root.tag) != "sitemapindex":
        pages = _locs(root, "url")
        logger.debug("Sitemap %s lists %d URLs", url, len(pages))
        return pages

    urls: list[str] = []
    for child_url in _locs(root, "sitemap"):
        child_url = normalize_url(child_url)
        if child_url in seen:
            logger.debug("Sitemap %s already expanded", child_url)
            continue
        urls.extend(_expand(http, child_url, seen, is_root=False))
    return urls

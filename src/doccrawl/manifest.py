from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urljoin, urlparse

from .errors import CrawlError, InvalidManifestUrlError, InvalidUrlError, ManifestError
from .http_client import HttpClient
from .sitemap import resolve_sitemap
from .urls import get_origin, is_valid_url, normalize_url

logger = logging.getLogger(__name__)


class ManifestKind(str, Enum):
    LLMS_TXT = "llms-txt"
    LLMS_FULL = "llms-full"
    SITEMAP = "sitemap"


_SITEMAP_PATH = re.compile(r"/sitemap[^/]*\.xml$", re.IGNORECASE)

_TITLE = re.compile(r"^#\s+(.+)$")
_DESCRIPTION = re.compile(r"^>\s*(.+)$")
_SECTION = re.compile(r"^##\s+(.+)$")
# - [Label](/path): optional notes
_LINK_ENTRY = re.compile(r"^[-*]\s+\[([^\]]+)\]\(\s*([^)\s]+)[^)]*\)(?:\s*:\s*.*)?$")
# - Label: /path
_LABELED_ENTRY = re.compile(r"^[-*]\s+(.+?):\s+(\S+)$")
# - /path
_BARE_ENTRY = re.compile(r"^[-*]\s+(\S+)$")

INVALID_MANIFEST_MESSAGE = (
    "URL must point to an llms.txt, llms-full.txt, or sitemap*.xml file.\n\n"
    "Examples:\n"
    "  https://docs.example.com/llms.txt\n"
    "  https://docs.example.com/llms-full.txt\n"
    "  https://example.com/sitemap.xml"
)


@dataclass(frozen=True)
class ManifestEntry:
    label: str
    path: str


@dataclass(frozen=True)
class ManifestSection:
    title: str
    entries: tuple[ManifestEntry, ...]


@dataclass(frozen=True)
class ManifestDocument:
    title: str | None
    description: str | None
    sections: tuple[ManifestSection, ...]


@dataclass(frozen=True)
class ResolvedManifest:
    kind: ManifestKind
    url: str
    urls: list[str]
    document: ManifestDocument | None = None


def _path(url: str) -> str:
    try:
        return urlparse(url).path
    except ValueError:
        return ""


def is_llms_txt_url(url: str) -> bool:
    return _path(url).endswith("/llms.txt")


def is_llms_full_url(url: str) -> bool:
    return _path(url).endswith("/llms-full.txt")


def is_sitemap_url(url: str) -> bool:
    return bool(_SITEMAP_PATH.search(_path(url)))


def detect_manifest_kind(url: str) -> ManifestKind | None:
    if is_llms_full_url(url):
        return ManifestKind.LLMS_FULL
    if is_llms_txt_url(url):
        return ManifestKind.LLMS_TXT
    if is_sitemap_url(url):
        return ManifestKind.SITEMAP
    return None


def check_manifest_url(url: str) -> ManifestKind:
    """Classify ``url`` without touching the network, or raise."""

    if not is_valid_url(url):
        raise InvalidUrlError(f"Invalid URL: {url}", url)
    kind = detect_manifest_kind(url)
    if kind is None:
        raise InvalidManifestUrlError(INVALID_MANIFEST_MESSAGE, url)
    return kind


def llms_txt_url(url: str) -> str:
    return f"{get_origin(url)}/llms.txt"


def path_to_label(path: str) -> str:
    """``/guides/getting-started.md`` -> ``Getting Started``."""

    label = re.sub(r"\.(md|html?|txt)$", "", path, flags=re.IGNORECASE)
    segments = [s for s in label.split("/") if s]
    if segments:
        label = segments[-1]
    label = re.sub(r"[-_]+", " ", label).strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), label)


def parse_llms_txt(content: str) -> ManifestDocument:
    title: str | None = None
    description: str | None = None
    sections: list[tuple[str, list[ManifestEntry]]] = []

    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue

        m = _TITLE.match(line)
        if m and title is None:
            title = m.group(1).strip()
            continue

        m = _DESCRIPTION.match(line)
        if m and description is None:
            description = m.group(1).strip()
            continue

        m = _SECTION.match(line)
        if m:
            sections.append((m.group(1).strip(), []))
            continue

        # Entries outside a section carry no meaning in the format.
        if not sections:
            continue
        entries = sections[-1][1]

        m = _LINK_ENTRY.match(line)
        if m:
            entries.append(ManifestEntry(label=m.group(1).strip(), path=m.group(2)))
            continue

        m = _LABELED_ENTRY.match(line)
        if m:
            entries.append(
                ManifestEntry(label=m.group(1).strip(), path=m.group(2).strip())
            )
            continue

        m = _BARE_ENTRY.match(line)
        if m:
            path = m.group(1).strip()
            entries.append(ManifestEntry(label=path_to_label(path), path=path))

    return ManifestDocument(
        title=title,
        description=description,
        sections=tuple(
            ManifestSection(title=name, entries=tuple(entries))
            for name, entries in sections
        ),
    )


def extract_urls(doc: ManifestDocument, base_url: str) -> list[str]:
    origin = get_origin(base_url)
    urls: list[str] = []
    for section in doc.sections:
        for entry in section.entries:
            if entry.path.startswith(("http://", "https://")):
                urls.append(entry.path)
            else:
                urls.append(urljoin(origin + "/", entry.path))
    return urls


def resolve_manifest(http: HttpClient, url: str) -> ResolvedManifest:
    """Turn a manifest URL into the ordered list of page URLs to crawl.

    ``llms-full.txt`` is a single opaque page and needs no network call
    here; the crawl loop fetches it like any other page.
    """

    kind = check_manifest_url(url)
    url = normalize_url(url)

    if kind is ManifestKind.LLMS_FULL:
        return ResolvedManifest(kind=kind, url=url, urls=[url])

    if kind is ManifestKind.SITEMAP:
        urls = resolve_sitemap(http, url)
        logger.info("Found %d URLs in sitemap %s", len(urls), url)
        return ResolvedManifest(kind=kind, url=url, urls=urls)

    try:
        res = http.get(url)
    except CrawlError as e:
        raise ManifestError(
            f"Failed to fetch llms.txt: {e}", url, e.status_code
        ) from e
    doc = parse_llms_txt(res.body)
    urls = extract_urls(doc, url)
    logger.info("Found %d URLs in %s", len(urls), url)
    return ResolvedManifest(kind=kind, url=url, urls=urls, document=doc)

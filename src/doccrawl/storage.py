from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from .urls import get_origin

logger = logging.getLogger(__name__)

META_FILE = "_meta.json"
HOME_ENV = "DOCCRAWL_HOME"

_INVALID_FILENAME_CHARS = re.compile(r"[<>:\"/\\|?*\x00-\x1F]")
MAX_SEGMENT_BYTES = 200

_PAGE_EXTENSION = re.compile(r"\.(html?|md|markdown|txt|xml)$", re.IGNORECASE)


def utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def load_json(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _safe_segment(segment: str) -> str:
    cleaned = _INVALID_FILENAME_CHARS.sub("-", unquote(segment)).strip()
    # File systems limit names by bytes, not characters.
    raw = cleaned.encode("utf-8")[:MAX_SEGMENT_BYTES]
    return raw.decode("utf-8", errors="ignore") or "-"


def url_to_file_path(url: str) -> str:
    """Relative ``.md`` path for a page URL.

    ``https://x.dev/guides/intro.html`` maps to ``guides/intro.md`` and the
    site root maps to ``index.md``. Query strings are ignored, so URLs that
    differ only by query share a file.
    """

    try:
        path = urlparse(url).path
    except ValueError:
        path = ""

    segments = [
        _safe_segment(s)
        for s in path.split("/")
        if s and s not in {".", ".."}
    ]
    if not segments:
        return "index.md"

    stem = _PAGE_EXTENSION.sub("", segments[-1]) or "index"
    segments[-1] = stem + ".md"
    return "/".join(segments)


def compute_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def default_cache_root() -> Path:
    home = os.environ.get(HOME_ENV)
    if home:
        return Path(home).expanduser() / "crawled"
    return Path.home() / ".doccrawl" / "crawled"


def get_crawl_dir(url: str, output: str | os.PathLike[str] | None = None) -> Path:
    if output:
        return Path(output)
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        host = ""
    return default_cache_root() / (host or "unknown")


@dataclass
class PageRecord:
    url: str
    file: str
    fetched_at: str
    status: int
    content_hash: str | None = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "url": self.url,
            "file": self.file,
            "fetchedAt": self.fetched_at,
            "status": self.status,
        }
        if self.content_hash is not None:
            out["contentHash"] = self.content_hash
        if self.title is not None:
            out["title"] = self.title
        return out


@dataclass
class CrawlLedger:
    origin: str
    crawled_at: str
    source: str | None = None
    urls: list[PageRecord] = field(default_factory=list)

    @property
    def pages(self) -> int:
        return sum(1 for r in self.urls if r.content_hash is not None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin": self.origin,
            "crawledAt": self.crawled_at,
            "source": self.source,
            "pages": self.pages,
            "urls": [r.to_dict() for r in self.urls],
        }


class ContentStore:
    """Markdown files plus a ``_meta.json`` ledger for one output directory.

    Nothing touches the filesystem until ``init``. The ledger written by a
    previous run, when present, is read once and only used to detect pages
    whose content has not changed.
    """

    def __init__(
        self,
        url: str,
        *,
        output: str | os.PathLike[str] | None = None,
    ) -> None:
        self.dir = get_crawl_dir(url, output)
        self.meta_path = self.dir / META_FILE
        self._ledger = CrawlLedger(origin=get_origin(url), crawled_at=utc_iso())
        self._previous: dict[str, dict[str, Any]] | None = None

    def init(self) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)

    def _previous_records(self) -> dict[str, dict[str, Any]]:
        if self._previous is None:
            self._previous = {}
            data = load_json(self.meta_path)
            if data is None:
                if self.meta_path.exists():
                    logger.warning("Ignoring unreadable ledger %s", self.meta_path)
                return self._previous
            for entry in data.get("urls") or []:
                if isinstance(entry, dict) and isinstance(entry.get("url"), str):
                    self._previous[entry["url"]] = entry
        return self._previous

    def has_unchanged(self, url: str, content_hash: str) -> bool:
        entry = self._previous_records().get(url)
        return entry is not None and entry.get("contentHash") == content_hash

    def get_existing_file_path(self, url: str) -> str | None:
        entry = self._previous_records().get(url)
        if entry is None:
            return None
        file = entry.get("file")
        return file if isinstance(file, str) and file else None

    def save_page(self, url: str, markdown: str, title: str | None = None) -> PageRecord:
        rel = url_to_file_path(url)
        path = self.dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(markdown, encoding="utf-8", newline="\n")

        record = PageRecord(
            url=url,
            file=rel,
            fetched_at=utc_iso(),
            status=200,
            content_hash=compute_hash(markdown),
            title=title,
        )
        self._ledger.urls.append(record)
        return record

    def record_unchanged(
        self,
        url: str,
        content_hash: str,
        title: str | None = None,
    ) -> PageRecord:
        record = PageRecord(
            url=url,
            file=self.get_existing_file_path(url) or url_to_file_path(url),
            fetched_at=utc_iso(),
            status=200,
            content_hash=content_hash,
            title=title,
        )
        self._ledger.urls.append(record)
        return record

    def record_failure(self, url: str, status: int) -> PageRecord:
        record = PageRecord(
            url=url,
            file=url_to_file_path(url),
            fetched_at=utc_iso(),
            status=status,
        )
        self._ledger.urls.append(record)
        return record

    def set_source(self, source: str) -> None:
        self._ledger.source = str(getattr(source, "value", source))

    def get_page_count(self) -> int:
        return self._ledger.pages

    def get_meta(self) -> dict[str, Any]:
        return self._ledger.to_dict()

    def save_meta(self) -> Path:
        self.meta_path.write_text(
            json.dumps(self.get_meta(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        return self.meta_path

    def file_exists(self, rel_path: str) -> bool:
        return (self.dir / rel_path).exists()

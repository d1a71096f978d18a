from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from tqdm import tqdm

from .content import process_content
from .errors import CrawlError, HttpStatusError, ManifestError
from .http_client import FetchResult, HttpClient
from .manifest import ManifestKind, check_manifest_url, resolve_manifest
from .queue import CrawlQueue, CrawlTarget
from .robots import RobotsGuard
from .storage import ContentStore, compute_hash
from .urls import filter_by_patterns, is_same_origin, normalize_patterns

logger = logging.getLogger(__name__)

# Statuses that go back into the queue instead of being recorded as failures.
REQUEUE_STATUSES = frozenset({429, 503})

# Raised while converting or writing one page; recorded, never fatal.
PAGE_ERRORS = (OSError, ValueError, RecursionError)


@dataclass(frozen=True)
class CrawlConfig:
    url: str
    rate: float = 2.0
    output: str | os.PathLike[str] | None = None
    include: Iterable[str] = ()
    exclude: Iterable[str] = ()
    dry_run: bool = False
    follow_offsite: bool = False
    respect_robots: bool = True
    robots_fail_open: bool = True


class Crawler:
    """Crawl every page a documentation manifest lists.

    One run resolves the manifest, filters the page URLs, then fetches them
    one at a time through a rate-limited queue and writes each page as
    markdown. The returned dict is the ``_meta.json`` ledger.
    """

    def __init__(
        self,
        *,
        http: HttpClient,
        config: CrawlConfig,
        robots: RobotsGuard | None = None,
    ) -> None:
        self.http = http
        self.cfg = config
        self.robots = robots or RobotsGuard(http, fail_open=config.robots_fail_open)
        self.queue = CrawlQueue(config.rate)
        self.store = ContentStore(config.url, output=config.output)
        self.stats: Counter[str] = Counter()
        self.planned: list[str] = []

    def crawl(self) -> dict:
        # Fails fast, before any network call.
        check_manifest_url(self.cfg.url)

        manifest = resolve_manifest(self.http, self.cfg.url)
        self.store.set_source(manifest.kind)

        urls = filter_by_patterns(
            manifest.urls,
            normalize_patterns(self.cfg.include),
            normalize_patterns(self.cfg.exclude),
        )
        if len(urls) != len(manifest.urls):
            logger.info(
                "%d of %d URLs left after filtering", len(urls), len(manifest.urls)
            )

        if self.cfg.dry_run:
            self.planned = list(dict.fromkeys(urls))
            for url in self.planned:
                logger.info("Would crawl %s", url)
            return self.store.get_meta()

        self.store.init()
        self._apply_crawl_delay(manifest.url)
        self.queue.add_all(urls)

        with tqdm(
            total=self.queue.size,
            desc="Crawling",
            unit="page",
            disable=not logger.isEnabledFor(logging.INFO),
        ) as bar:
            while True:
                target = self.queue.next()
                if target is None:
                    break
                done = self._process(target, manifest.kind)
                if done:
                    bar.update(1)

        path = self.store.save_meta()
        logger.info(
            "Crawled %d pages into %s (%s)",
            self.store.get_page_count(),
            self.store.dir,
            ", ".join(f"{k}={v}" for k, v in sorted(self.stats.items())) or "no pages",
        )
        logger.debug("Wrote ledger %s", path)
        return self.store.get_meta()

    def _apply_crawl_delay(self, seed_url: str) -> None:
        if not self.cfg.respect_robots:
            return
        delay = self.robots.crawl_delay(seed_url)
        if delay and delay > self.queue.interval_s:
            logger.info("Honoring robots.txt Crawl-delay of %.2fs", delay)
            self.queue.set_rate(1.0 / delay)

    def _process(self, target: CrawlTarget, kind: ManifestKind) -> bool:
        """Handle one dequeued target; False when it went back into the queue."""

        url = target.url

        if self.cfg.respect_robots and not self.robots.is_allowed(url):
            logger.info("Skipping %s (disallowed by robots.txt)", url)
            self.stats["skipped_robots"] += 1
            return True

        try:
            res = self.http.get(url)
        except HttpStatusError as e:
            if e.status_code in REQUEUE_STATUSES and self.queue.retry(target):
                logger.info(
                    "HTTP %d for %s, requeued (retry %d)",
                    e.status_code,
                    url,
                    target.retry_count,
                )
                self.stats["retried"] += 1
                return False
            return self._fail(url, e, kind)
        except CrawlError as e:
            return self._fail(url, e, kind)

        if not self.cfg.follow_offsite and not is_same_origin(url, res.final_url):
            logger.info("Skipping %s (redirected offsite to %s)", url, res.final_url)
            self.stats["skipped_offsite"] += 1
            return True

        try:
            self._store(url, res)
        except PAGE_ERRORS as e:
            logger.warning("Failed to store %s: %r", url, e)
            self.store.record_failure(url, res.status_code)
            self.stats["failed"] += 1
        return True

    def _store(self, url: str, res: FetchResult) -> None:
        page = process_content(res.body, res.content_type, res.final_url)
        content_hash = compute_hash(page.markdown)

        existing = self.store.get_existing_file_path(url)
        if (
            self.store.has_unchanged(url, content_hash)
            and existing is not None
            and self.store.file_exists(existing)
        ):
            self.store.record_unchanged(url, content_hash, page.title)
            logger.debug("Unchanged %s", url)
            self.stats["unchanged"] += 1
            return

        record = self.store.save_page(url, page.markdown, page.title)
        logger.debug("Saved %s -> %s", url, record.file)
        self.stats["saved"] += 1

    def _fail(self, url: str, error: CrawlError, kind: ManifestKind) -> bool:
        if kind is ManifestKind.LLMS_FULL:
            raise ManifestError(
                f"Failed to fetch llms-full.txt: {error}", url, error.status_code
            ) from error
        logger.warning("Failed %s: %s", url, error)
        self.store.record_failure(url, error.status_code or 0)
        self.stats["failed"] += 1
        return True

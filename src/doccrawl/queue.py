from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable

from .urls import normalize_url

MAX_RETRIES = 3


@dataclass
class CrawlTarget:
    url: str
    retry_count: int = 0


class CrawlQueue:
    """FIFO of pending URLs with dedup and request pacing.

    All pacing lives here: ``next`` waits until ``1 / rate`` seconds have
    passed since the previous dequeue. ``set_rate`` changes the interval for
    subsequent calls, which is how a robots.txt Crawl-delay takes effect.
    """

    def __init__(
        self,
        rate: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._queue: deque[CrawlTarget] = deque()
        self._visited: set[str] = set()
        self._last_dequeue_at: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._interval_s = 0.0
        self.set_rate(rate)

    def add(self, url: str) -> bool:
        normalized = normalize_url(url)
        if normalized in self._visited:
            return False
        self._visited.add(normalized)
        self._queue.append(CrawlTarget(url=normalized))
        return True

    def add_all(self, urls: Iterable[str], exclude_url: str | None = None) -> int:
        excluded = normalize_url(exclude_url) if exclude_url else None
        added = 0
        for url in urls:
            if excluded is not None and normalize_url(url) == excluded:
                continue
            if self.add(url):
                added += 1
        return added

    def mark_visited(self, url: str) -> None:
        self._visited.add(normalize_url(url))

    def has_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    def next(self) -> CrawlTarget | None:
        if not self._queue:
            return None

        if self._last_dequeue_at is not None:
            elapsed = self._clock() - self._last_dequeue_at
            if elapsed < self._interval_s:
                self._sleep(self._interval_s - elapsed)

        self._last_dequeue_at = self._clock()
        return self._queue.popleft()

    def retry(self, target: CrawlTarget) -> bool:
        if target.retry_count >= MAX_RETRIES:
            return False
        target.retry_count += 1
        self._queue.append(target)
        return True

    def set_rate(self, requests_per_second: float) -> None:
        if requests_per_second <= 0:
            raise ValueError(f"rate must be positive, got {requests_per_second}")
        self._interval_s = 1.0 / requests_per_second

    def clear(self) -> None:
        self._queue.clear()
        self._visited.clear()

    def get_queued(self) -> list[str]:
        return [t.url for t in self._queue]

    def get_visited(self) -> list[str]:
        return sorted(self._visited)

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def size(self) -> int:
        return len(self._queue)

    @property
    def is_empty(self) -> bool:
        return not self._queue

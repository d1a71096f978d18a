from __future__ import annotations

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from doccrawl.crawl import CrawlConfig, Crawler
from doccrawl.http_client import HttpClient
from doccrawl.queue import CrawlQueue

HTML = "text/html; charset=utf-8"
MARKDOWN = "text/markdown; charset=utf-8"
XML = "application/xml"


def make_response(
    url: str,
    body: str | bytes = "",
    *,
    status: int = 200,
    content_type: str | None = HTML,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    h: dict[str, str] = {}
    if content_type is not None:
        h["Content-Type"] = content_type
    h.update(headers or {})
    resp.headers = CaseInsensitiveDict(h)
    resp._content = body.encode("utf-8") if isinstance(body, str) else body
    resp._content_consumed = True
    resp.url = url
    return resp


class FakeSession:
    """Serves canned responses by exact URL; anything unknown is a 404.

    Each route holds a list of responses (or exceptions to raise). They are
    served in order and the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list] = {}
        self.calls: list[str] = []
        self.headers_seen: list[dict] = []

    def add(self, url: str, body: str | bytes = "", **kwargs) -> FakeSession:
        self.routes.setdefault(url, []).append(("response", body, kwargs))
        return self

    def fail(self, url: str, exc: Exception) -> FakeSession:
        self.routes.setdefault(url, []).append(("raise", exc, {}))
        return self

    def get(self, url, **kwargs):
        self.calls.append(url)
        self.headers_seen.append(dict(kwargs.get("headers") or {}))
        entries = self.routes.get(url)
        if not entries:
            return make_response(url, "not found", status=404, content_type="text/plain")
        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        kind, payload, opts = entry
        if kind == "raise":
            raise payload
        return make_response(url, payload, **opts)

    def count(self, url: str) -> int:
        return self.calls.count(url)

    def __enter__(self) -> FakeSession:
        return self

    def __exit__(self, *exc) -> None:
        return None


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def http(session: FakeSession) -> HttpClient:
    return HttpClient(session, backoff_base_s=0)


@pytest.fixture
def no_sleep(monkeypatch):
    slept: list[float] = []
    monkeypatch.setattr("doccrawl.http_client.time.sleep", slept.append)
    return slept


def make_crawler(http: HttpClient, url: str, **options) -> Crawler:
    crawler = Crawler(http=http, config=CrawlConfig(url=url, **options))
    crawler.queue = CrawlQueue(crawler.cfg.rate, sleep=lambda _s: None)
    return crawler

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

from .errors import CrawlError, HttpStatusError
from .http_client import HttpClient
from .urls import get_origin

logger = logging.getLogger(__name__)

ROBOTS_TOKEN = "doccrawl"


@dataclass(frozen=True)
class _Rule:
    pattern: str
    allow: bool
    regex: re.Pattern[str]


def _compile_rule(pattern: str, *, allow: bool) -> _Rule:
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = "".join(".*" if ch == "*" else re.escape(ch) for ch in body)
    if anchored:
        regex += "$"
    return _Rule(pattern=pattern, allow=allow, regex=re.compile(regex))


@dataclass
class _Group:
    agents: list[str] = field(default_factory=list)
    rules: list[_Rule] = field(default_factory=list)
    crawl_delay_s: float | None = None


def _parse_groups(raw_text: str) -> tuple[list[_Group], list[str]]:
    groups: list[_Group] = []
    sitemaps: list[str] = []
    current: _Group | None = None
    in_rules = False

    for line in raw_text.splitlines():
        if "#" in line:
            line = line.split("#", 1)[0]
        line = line.strip()
        if not line:
            continue

        key, _, value = line.partition(":")
        key = key.strip().lower()
        value = value.strip()

        if key == "sitemap":
            if value:
                sitemaps.append(value)
            continue

        if key == "user-agent":
            if current is None or in_rules:
                current = _Group()
                groups.append(current)
                in_rules = False
            current.agents.append(value.lower())
            continue

        # Rules before the first User-agent line belong to nobody.
        if current is None:
            continue

        if key in {"allow", "disallow"}:
            in_rules = True
            # An empty Disallow means "allow everything": no rule to add.
            if value:
                current.rules.append(_compile_rule(value, allow=key == "allow"))
        elif key == "crawl-delay":
            in_rules = True
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0 and current.crawl_delay_s is None:
                current.crawl_delay_s = delay

    return groups, sitemaps


class RobotsPolicy:
    """robots.txt rules as seen by one crawler.

    Picks the groups naming our product token, falling back to ``*``.
    The longest matching pattern wins and Allow wins ties. ``*`` and ``$``
    wildcards are supported.
    """

    def __init__(
        self,
        rules: list[_Rule] | None = None,
        *,
        crawl_delay_s: float | None = None,
        sitemaps: list[str] | None = None,
        deny_all: bool = False,
    ) -> None:
        self._rules = sorted(
            rules or [], key=lambda r: (len(r.pattern), r.allow), reverse=True
        )
        self.crawl_delay_s = crawl_delay_s
        self.sitemaps = list(sitemaps or [])
        self._deny_all = deny_all

    @classmethod
    def parse(cls, raw_text: str, user_agent: str = ROBOTS_TOKEN) -> RobotsPolicy:
        token = user_agent.split("/", 1)[0].strip().lower()
        groups, sitemaps = _parse_groups(raw_text)

        selected = [
            g
            for g in groups
            if any(a != "*" and token.startswith(a) for a in g.agents)
        ]
        if not selected:
            selected = [g for g in groups if "*" in g.agents]

        rules: list[_Rule] = []
        crawl_delay_s: float | None = None
        for group in selected:
            rules.extend(group.rules)
            if crawl_delay_s is None:
                crawl_delay_s = group.crawl_delay_s

        return cls(rules, crawl_delay_s=crawl_delay_s, sitemaps=sitemaps)

    @classmethod
    def permissive(cls) -> RobotsPolicy:
        return cls()

    @classmethod
    def restrictive(cls) -> RobotsPolicy:
        return cls(deny_all=True)

    def allow(self, path: str) -> bool:
        if not path.startswith("/"):
            path = "/" + path
        if path == "/robots.txt":
            return True
        if self._deny_all:
            return False
        for rule in self._rules:
            if rule.regex.match(path):
                return rule.allow
        return True

    def can_fetch(self, url: str) -> bool:
        parsed = urlparse(url)
        path = parsed.path or "/"
        if parsed.query:
            path += "?" + parsed.query
        return self.allow(path)


class RobotsGuard:
    """Per-origin robots.txt cache.

    Policies are fetched once per origin and kept until ``reset_cache``.
    Fetch and parse failures never propagate: with ``fail_open`` the crawl
    proceeds as if no robots.txt existed, otherwise the origin is denied.
    A 4xx for robots.txt always means "no policy".
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        user_agent: str = ROBOTS_TOKEN,
        fail_open: bool = True,
    ) -> None:
        self.http = http
        self.user_agent = user_agent
        self.fail_open = fail_open
        self._cache: dict[str, RobotsPolicy] = {}

    def get_policy(self, url: str) -> RobotsPolicy:
        origin = get_origin(url)
        cached = self._cache.get(origin)
        if cached is not None:
            return cached
        policy = self._fetch_policy(origin)
        self._cache[origin] = policy
        return policy

    def is_allowed(self, url: str) -> bool:
        return self.get_policy(url).can_fetch(url)

    def crawl_delay(self, url: str) -> float | None:
        return self.get_policy(url).crawl_delay_s

    def reset_cache(self) -> None:
        self._cache.clear()

    def _fetch_policy(self, origin: str) -> RobotsPolicy:
        robots_url = f"{origin}/robots.txt"
        try:
            res = self.http.get(robots_url, retries=1)
        except HttpStatusError as e:
            status = e.status_code or 0
            if 400 <= status < 500 and status != 429:
                logger.debug("No robots.txt at %s (HTTP %d)", robots_url, status)
                return RobotsPolicy.permissive()
            return self._unavailable(robots_url, e)
        except CrawlError as e:
            return self._unavailable(robots_url, e)

        try:
            return RobotsPolicy.parse(res.body, self.user_agent)
        except (ValueError, re.error) as e:
            return self._unavailable(robots_url, e)

    def _unavailable(self, robots_url: str, error: Exception) -> RobotsPolicy:
        if self.fail_open:
            logger.warning("Ignoring unreadable %s: %s", robots_url, error)
            return RobotsPolicy.permissive()
        logger.warning("Denying origin, unreadable %s: %s", robots_url, error)
        return RobotsPolicy.restrictive()

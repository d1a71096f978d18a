from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urljoin

import requests
from requests import exceptions as req_exc

from . import __version__
from .errors import (
    FetchError,
    HttpStatusError,
    NonTextContentError,
    ResponseTooLargeError,
    TooManyRedirectsError,
)
from .urls import normalize_url

logger = logging.getLogger(__name__)

USER_AGENT = f"doccrawl/{__version__}"
ACCEPT = "text/html,text/markdown,text/plain,application/xhtml+xml,*/*;q=0.8"

MAX_REDIRECTS = 5
MAX_BODY_BYTES = 1024 * 1024
MAX_RETRY_AFTER_S = 60.0

_TEXT_TYPES = {
    "application/xhtml+xml",
    "application/xml",
}


def _is_transient(status: int) -> bool:
    return status == 429 or 500 <= status < 600


def _retry_after_seconds(headers: Mapping[str, str]) -> float | None:
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None
    try:
        return min(float(retry_after), MAX_RETRY_AFTER_S)
    except ValueError:
        return None


def media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_text_content_type(content_type: str | None) -> bool:
    """Markdown, HTML, plain text and XML are accepted.

    A missing header is accepted too; the normalizer sniffs the body.
    """

    ct = media_type(content_type)
    if not ct:
        return True
    return ct.startswith("text/") or ct in _TEXT_TYPES or ct.endswith("+xml")


def _charset(content_type: str | None) -> str:
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return "utf-8"


def decode_body(body: bytes, content_type: str | None) -> str:
    try:
        return body.decode(_charset(content_type), errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    headers: dict[str, str]
    content_type: str
    body: str
    fetched_at: float


class HttpClient:
    def __init__(
        self,
        session: requests.Session,
        *,
        timeout_s: float = 30,
        max_retries: int = 3,
        backoff_base_s: float = 1.0,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._session = session
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._backoff_base_s = backoff_base_s
        self._headers = {"User-Agent": user_agent, "Accept": ACCEPT}

    def _sleep_before_retry(self, url: str, attempt: int, wait_s: float | None) -> None:
        if wait_s is None:
            wait_s = self._backoff_base_s * (2**attempt)
        logger.debug("Retrying %s in %.2fs (attempt %d)", url, wait_s, attempt + 1)
        time.sleep(wait_s)

    def get(self, url: str, *, retries: int | None = None) -> FetchResult:
        """GET ``url`` following redirects, retrying transient failures.

        Raises a ``CrawlError`` subclass for anything that is not a
        successful text response.
        """

        budget = self._max_retries if retries is None else retries
        requested = normalize_url(url)
        current = requested
        redirects = 0
        attempt = 0

        while True:
            try:
                resp = self._session.get(
                    current,
                    timeout=self._timeout_s,
                    headers=self._headers,
                    allow_redirects=False,
                    stream=True,
                )
            except req_exc.SSLError as e:
                raise FetchError(f"TLS error fetching {current}: {e}", url) from e
            except req_exc.RequestException as e:
                if attempt >= budget:
                    raise FetchError(f"Failed to fetch {current}: {e}", url) from e
                self._sleep_before_retry(current, attempt, None)
                attempt += 1
                continue

            try:
                status = int(resp.status_code)

                if 300 <= status < 400:
                    location = resp.headers.get("Location")
                    if location:
                        redirects += 1
                        if redirects > MAX_REDIRECTS:
                            raise TooManyRedirectsError(
                                f"Too many redirects (>{MAX_REDIRECTS}) for {requested}",
                                url,
                                status,
                            )
                        current = normalize_url(urljoin(current, location))
                        logger.debug("Redirect %d -> %s", status, current)
                        continue

                if _is_transient(status):
                    if attempt < budget:
                        self._sleep_before_retry(
                            current, attempt, _retry_after_seconds(resp.headers)
                        )
                        attempt += 1
                        continue
                    raise HttpStatusError(
                        f"HTTP {status} after {budget} retries: {current}",
                        url,
                        status,
                    )

                if status >= 300 or status < 200:
                    raise HttpStatusError(f"HTTP {status}: {current}", url, status)

                content_type = resp.headers.get("Content-Type", "")
                if not is_text_content_type(content_type):
                    raise NonTextContentError(
                        f"Non-text content type: {content_type}", url, status
                    )

                raw = self._read_body(resp, url=url, status=status)
                headers = {k: str(v) for k, v in resp.headers.items()}
            finally:
                resp.close()

            return FetchResult(
                url=requested,
                final_url=current,
                status_code=status,
                headers=headers,
                content_type=content_type,
                body=decode_body(raw, content_type),
                fetched_at=time.time(),
            )

    def _read_body(self, resp: requests.Response, *, url: str, status: int) -> bytes:
        declared = resp.headers.get("Content-Length")
        if declared:
            try:
                declared_size = int(declared)
            except ValueError:
                declared_size = None
            if declared_size is not None and declared_size > MAX_BODY_BYTES:
                raise ResponseTooLargeError(
                    f"Response too large: {declared_size} bytes (max {MAX_BODY_BYTES})",
                    url,
                    status,
                )

        chunks: list[bytes] = []
        total = 0
        try:
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                total += len(chunk)
                if total > MAX_BODY_BYTES:
                    raise ResponseTooLargeError(
                        f"Response too large: >{MAX_BODY_BYTES} bytes",
                        url,
                        status,
                    )
                chunks.append(chunk)
        except req_exc.RequestException as e:
            raise FetchError(f"Failed reading body of {url}: {e}", url, status) from e
        return b"".join(chunks)

from __future__ import annotations


class CrawlError(Exception):
    """Base error for everything the crawl engine raises.

    ``status_code`` is set whenever an HTTP status is known, so callers can
    record it on the failed page.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class InvalidUrlError(CrawlError):
    pass


class InvalidManifestUrlError(CrawlError):
    pass


class ManifestError(CrawlError):
    pass


class FetchError(CrawlError):
    """Transport-level failure (timeout, connection reset, TLS)."""


class HttpStatusError(CrawlError):
    pass


class TooManyRedirectsError(CrawlError):
    pass


class NonTextContentError(CrawlError):
    pass


class ResponseTooLargeError(CrawlError):
    pass

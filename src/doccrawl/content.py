from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse
from xml.dom import minidom
from xml.parsers.expat import ExpatError

from .convert.html_to_md import html_to_markdown
from .http_client import media_type


class ContentKind(str, Enum):
    HTML = "html"
    MARKDOWN = "markdown"
    TEXT = "text"
    XML = "xml"


_MARKDOWN_TYPES = {"text/markdown", "text/x-markdown"}
_XML_TYPES = {"application/xml", "text/xml"}

_MARKDOWN_TITLE = re.compile(r"^#[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
# A fence runs to its closing marker, or to the end of the document.
_FENCED_BLOCK = re.compile(
    r"^[ \t]*(`{3,}|~{3,})[^\n]*\n.*?(?:^[ \t]*\1[ \t]*$|\Z)",
    re.MULTILINE | re.DOTALL,
)


def looks_like_html(text: str) -> bool:
    head = text[:2048].lstrip().lower()
    return head.startswith("<") and (
        "<html" in head or "<!doctype html" in head or "<head" in head or "<body" in head
    )


def sniff_kind(url: str, *, content_type: str | None, body: str) -> ContentKind:
    """Classify a fetched page.

    The Content-Type header wins; without one, the body is sniffed and the
    URL path extension is the last resort. Anything unrecognised is stored
    as plain text.
    """

    ct = media_type(content_type)
    if ct in _MARKDOWN_TYPES:
        return ContentKind.MARKDOWN
    if ct in {"text/html", "application/xhtml+xml"}:
        return ContentKind.HTML
    if ct in _XML_TYPES or ct.endswith("+xml"):
        return ContentKind.XML
    if ct == "text/plain":
        return ContentKind.TEXT

    if looks_like_html(body):
        return ContentKind.HTML

    path = urlparse(url).path.lower()
    if path.endswith((".md", ".markdown")):
        return ContentKind.MARKDOWN
    if path.endswith(".xml") or body.lstrip().startswith("<?xml"):
        return ContentKind.XML
    return ContentKind.TEXT


@dataclass(frozen=True)
class NormalizedContent:
    markdown: str
    title: str | None = None


def markdown_title(markdown: str) -> str | None:
    m = _MARKDOWN_TITLE.search(_FENCED_BLOCK.sub("", markdown))
    return m.group(1).strip() if m else None


def _render_xml(body: str, url: str) -> NormalizedContent:
    text = body.strip()
    try:
        pretty = minidom.parseString(text.encode("utf-8")).toprettyxml(indent="  ")
    except ExpatError:
        pretty = text
    # minidom emits blank lines for whitespace-only text nodes.
    text = "\n".join(ln for ln in pretty.splitlines() if ln.strip())
    name = [s for s in urlparse(url).path.split("/") if s]
    title = name[-1] if name else urlparse(url).netloc
    return NormalizedContent(markdown=f"# {title}\n\n```xml\n{text}\n```\n", title=title)


def process_content(body: str, content_type: str | None, url: str) -> NormalizedContent:
    """Turn a fetched page body into markdown.

    Markdown and plain text are stored as received. HTML is converted with
    :func:`html_to_markdown`, which resolves relative links against ``url``.
    """

    kind = sniff_kind(url, content_type=content_type, body=body)

    if kind is ContentKind.HTML:
        markdown, title = html_to_markdown(body, base_url=url)
        return NormalizedContent(markdown=markdown, title=title)

    if kind is ContentKind.XML:
        return _render_xml(body, url)

    return NormalizedContent(markdown=body, title=markdown_title(body))

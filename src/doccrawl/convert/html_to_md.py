from __future__ import annotations

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from markdownify import ATX, ASTERISK, MarkdownConverter

# Removed before conversion, in this order.
REMOVE_SELECTORS = (
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "svg",
    "canvas",
    "nav",
    "aside",
    "[role='navigation']",
    "[role='banner']",
    "[role='contentinfo']",
    "[role='complementary']",
    ".nav",
    ".navbar",
    ".navigation",
    ".sidebar",
    ".menu",
    ".toc",
    ".table-of-contents",
    ".breadcrumb",
    ".breadcrumbs",
    ".cookie-banner",
    ".cookie-consent",
    ".advertisement",
    ".social-share",
    ".share-buttons",
    ".comments",
)

# Page chrome only; an article's own header/footer is content.
CHROME_TAGS = ("header", "footer")

CONTENT_SELECTORS = (
    "main",
    "article",
    "[role='main']",
    "[role='article']",
    ".main-content",
    ".docs-content",
    ".documentation",
    ".content",
    "#main-content",
    "#content",
    "#main",
)

_LANGUAGE_CLASS = re.compile(r"^(?:language|lang|highlight|hljs)-([\w+#.-]+)$")


def strip_boilerplate(soup: BeautifulSoup) -> int:
    removed = 0
    for selector in REMOVE_SELECTORS:
        for node in soup.select(selector):
            if node.decomposed:
                continue
            node.decompose()
            removed += 1
    for node in soup.find_all(list(CHROME_TAGS)):
        if node.decomposed or node.find_parent("article") is not None:
            continue
        node.decompose()
        removed += 1
    return removed


def pick_main_content(soup: BeautifulSoup) -> Tag:
    for selector in CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node and node.get_text(strip=True):
            return node
    return soup.body or soup


def extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(" ", strip=True)
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return h1.get_text(" ", strip=True)
    og = soup.find("meta", attrs={"property": "og:title"})
    if og is not None:
        content = str(og.get("content") or "").strip()
        if content:
            return content
    return None


def _language_hint(node: Tag | None) -> str:
    if node is None:
        return ""
    for cls in node.get("class") or []:
        m = _LANGUAGE_CLASS.match(cls)
        if m:
            return m.group(1)
    return ""


def _wrap_like(original: str, inner: str) -> str:
    """Keep the whitespace that surrounded ``original`` around ``inner``."""

    lead = original[: len(original) - len(original.lstrip())]
    trail = original[len(original.rstrip()) :]
    return f"{lead}{inner}{trail}"


def _title_part(node: Tag) -> str:
    title = str(node.get("title") or "").strip()
    if not title:
        return ""
    return ' "%s"' % title.replace('"', '\\"')


class DocsMarkdownConverter(MarkdownConverter):
    """GitHub-flavored markdown for documentation pages.

    Each ``convert_<tag>`` method is one rule; the ones below override
    markdownify's defaults for links, images and code blocks. Everything
    else (headings, emphasis, lists, tables) uses markdownify's own rules
    with the options set here.
    """

    def __init__(self, *, base_url: str, **options) -> None:
        options.setdefault("heading_style", ATX)
        options.setdefault("bullets", "-")
        options.setdefault("strong_em_symbol", ASTERISK)
        options.setdefault("escape_underscores", False)
        options.setdefault("escape_misc", False)
        options.setdefault("table_infer_header", True)
        super().__init__(**options)
        self.base_url = base_url

    def convert_a(self, el, text, *args, **kwargs):
        if not el.get_text(strip=True) or not text.strip():
            return ""
        href = str(el.get("href") or "").strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            return text
        url = urljoin(self.base_url, href)
        return _wrap_like(text, f"[{text.strip()}]({url}{_title_part(el)})")

    def convert_img(self, el, text, *args, **kwargs):
        src = str(el.get("src") or "").strip()
        if not src:
            return ""
        alt = str(el.get("alt") or "").strip()
        return f"![{alt}]({urljoin(self.base_url, src)}{_title_part(el)})"

    def convert_pre(self, el, text, *args, **kwargs):
        code = el.find("code")
        lang = _language_hint(code) or _language_hint(el)
        source = code if code is not None else el
        body = source.get_text().strip("\n")
        if not body.strip():
            return ""
        return f"\n\n```{lang}\n{body}\n```\n\n"


def clean_markdown(markdown: str) -> str:
    lines = [ln.rstrip() for ln in markdown.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip() + "\n"


def html_to_markdown(html: str, *, base_url: str) -> tuple[str, str | None]:
    """Return ``(markdown, title)`` for an HTML page."""

    soup = BeautifulSoup(html, "html.parser")
    # Read the title first: chrome removal may drop the page's <h1>.
    title = extract_title(soup)
    strip_boilerplate(soup)
    main = pick_main_content(soup)
    markdown = DocsMarkdownConverter(base_url=base_url).convert(str(main))
    return clean_markdown(markdown), title

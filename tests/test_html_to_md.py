from bs4 import BeautifulSoup

from doccrawl.convert.html_to_md import (
    clean_markdown,
    extract_title,
    html_to_markdown,
    pick_main_content,
    strip_boilerplate,
)

BASE = "https://docs.example.com/guides/intro"


def convert(html):
    return html_to_markdown(html, base_url=BASE)[0]


def test_headings_emphasis_and_lists():
    md = convert(
        "<body><h1>Intro</h1><h2>Setup</h2>"
        "<p>Some <strong>bold</strong> and <em>italic</em> text.</p>"
        "<ul><li>one</li><li>two</li></ul>"
        "<ol><li>first</li><li>second</li></ol></body>"
    )
    assert "# Intro" in md
    assert "## Setup" in md
    assert "**bold**" in md
    assert "*italic*" in md
    assert "- one\n- two" in md
    assert "1. first\n2. second" in md


def test_links_are_absolute_and_empty_links_dropped():
    md = convert(
        '<body><p><a href="../api/client">Client</a> '
        '<a href="https://other.dev/x" title="Other">Other</a> '
        '<a href="/empty"></a>'
        '<a href="#section">Jump</a> '
        '<a href="javascript:void(0)">Click</a></p></body>'
    )
    assert "[Client](https://docs.example.com/api/client)" in md
    assert '[Other](https://other.dev/x "Other")' in md
    assert "/empty" not in md
    assert "Jump" in md and "#section" not in md
    assert "Click" in md and "javascript" not in md


def test_images_are_absolute():
    md = convert('<body><p><img src="/img/a.png" alt="Diagram"></p></body>')
    assert "![Diagram](https://docs.example.com/img/a.png)" in md


def test_code_blocks_keep_language_hint():
    md = convert(
        '<body><pre><code class="language-python">def f():\n    return 1\n</code></pre>'
        '<pre class="highlight-bash">ls -la</pre>'
        "<pre><code>plain</code></pre></body>"
    )
    assert "```python\ndef f():\n    return 1\n```" in md
    assert "```bash\nls -la\n```" in md
    assert "```\nplain\n```" in md


def test_tables_become_pipe_tables():
    md = convert(
        "<body><table><tr><th>Name</th><th>Type</th></tr>"
        "<tr><td>id</td><td>int</td></tr></table></body>"
    )
    lines = [ln for ln in md.splitlines() if ln.startswith("|")]
    assert len(lines) == 3
    assert "Name" in lines[0] and "Type" in lines[0]
    assert set(lines[1].replace("|", "").strip()) <= {"-", " ", ":"}
    assert "id" in lines[2] and "int" in lines[2]


def test_boilerplate_removed():
    md = convert(
        "<body><header>Site header</header><nav>Menu</nav>"
        "<div class='sidebar'>Side</div><script>alert(1)</script>"
        "<p>Real content</p><footer>Copyright</footer></body>"
    )
    assert "Real content" in md
    for noise in ("Site header", "Menu", "Side", "alert", "Copyright"):
        assert noise not in md


def test_article_header_survives_chrome_removal():
    soup = BeautifulSoup(
        "<body><header>Chrome</header><article><header><h1>Post</h1></header>"
        "<p>Body</p></article></body>",
        "html.parser",
    )
    strip_boilerplate(soup)
    text = soup.get_text(" ", strip=True)
    assert "Chrome" not in text
    assert "Post" in text


def test_main_content_preference():
    soup = BeautifulSoup(
        "<body><div>outside</div><main><p>inside</p></main></body>", "html.parser"
    )
    assert pick_main_content(soup).name == "main"

    soup = BeautifulSoup(
        "<body><main> </main><article><p>a</p></article></body>", "html.parser"
    )
    assert pick_main_content(soup).name == "article"

    soup = BeautifulSoup("<body><div>only</div></body>", "html.parser")
    assert pick_main_content(soup).name == "body"


def test_title_order():
    def title(html):
        return extract_title(BeautifulSoup(html, "html.parser"))

    assert title("<title>T</title><h1>H</h1>") == "T"
    assert title("<h1>H</h1><meta property='og:title' content='O'>") == "H"
    assert title("<meta property='og:title' content='O'>") == "O"
    assert title("<p>nothing</p>") is None


def test_title_survives_header_removal():
    _, title = html_to_markdown(
        "<body><header><h1>Header Title</h1></header><p>x</p></body>",
        base_url=BASE,
    )
    assert title == "Header Title"


def test_clean_markdown():
    assert clean_markdown("a  \n\n\n\nb\n\n") == "a\n\nb\n"

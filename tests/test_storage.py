import json

import pytest

from doccrawl.manifest import ManifestKind
from doccrawl.storage import (
    MAX_SEGMENT_BYTES,
    META_FILE,
    ContentStore,
    compute_hash,
    default_cache_root,
    get_crawl_dir,
    url_to_file_path,
)


@pytest.mark.parametrize(
    "url,path",
    [
        ("https://x.dev/", "index.md"),
        ("https://x.dev", "index.md"),
        ("https://x.dev/guides/intro.html", "guides/intro.md"),
        ("https://x.dev/guides/intro/", "guides/intro.md"),
        ("https://x.dev/api/client.md", "api/client.md"),
        ("https://x.dev/llms-full.txt", "llms-full.md"),
        ("https://x.dev/a/../b/./c", "a/b/c.md"),
        ("https://x.dev/docs/what%3F.html?x=1", "docs/what-.md"),
        ("https://x.dev/v1.2/ref", "v1.2/ref.md"),
    ],
)
def test_url_to_file_path(url, path):
    assert url_to_file_path(url) == path


def test_long_segments_are_capped_in_bytes():
    path = url_to_file_path("https://x.dev/docs/" + "文" * 90)
    name = path.split("/")[-1]
    assert path.startswith("docs/文")
    assert name.endswith(".md")
    assert len(name.encode("utf-8")) <= MAX_SEGMENT_BYTES + len(".md")
    # Truncation never splits a multi-byte character.
    assert set(name[: -len(".md")]) == {"文"}


def test_compute_hash_is_short_and_stable():
    h = compute_hash("# Title\n")
    assert len(h) == 16
    assert h == compute_hash("# Title\n")
    assert h != compute_hash("# Title \n")


def test_default_cache_root_honors_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DOCCRAWL_HOME", str(tmp_path))
    assert default_cache_root() == tmp_path / "crawled"
    assert get_crawl_dir("https://Docs.X.dev/llms.txt") == tmp_path / "crawled" / "docs.x.dev"
    assert get_crawl_dir("https://x.dev/llms.txt", tmp_path / "out") == tmp_path / "out"


def test_construction_touches_nothing(tmp_path):
    out = tmp_path / "out"
    ContentStore("https://x.dev/llms.txt", output=out)
    assert not out.exists()


def test_save_page_and_meta(tmp_path):
    store = ContentStore("https://x.dev/llms.txt", output=tmp_path)
    store.init()
    store.set_source(ManifestKind.LLMS_TXT)
    record = store.save_page("https://x.dev/guides/intro", "# Intro\n", "Intro")
    store.record_failure("https://x.dev/missing", 404)

    assert (tmp_path / "guides" / "intro.md").read_text(encoding="utf-8") == "# Intro\n"
    assert record.content_hash == compute_hash("# Intro\n")
    assert store.get_page_count() == 1
    assert store.file_exists("guides/intro.md")

    store.save_meta()
    meta = json.loads((tmp_path / META_FILE).read_text(encoding="utf-8"))
    assert meta["origin"] == "https://x.dev"
    assert meta["source"] == "llms-txt"
    assert meta["pages"] == 1
    assert meta["urls"][0]["contentHash"] == record.content_hash
    assert meta["urls"][0]["title"] == "Intro"
    assert meta["urls"][1] == {
        "url": "https://x.dev/missing",
        "file": "missing.md",
        "fetchedAt": meta["urls"][1]["fetchedAt"],
        "status": 404,
    }


def test_has_unchanged_reads_previous_ledger(tmp_path):
    first = ContentStore("https://x.dev/llms.txt", output=tmp_path)
    first.init()
    rec = first.save_page("https://x.dev/a", "A\n")
    first.save_meta()

    second = ContentStore("https://x.dev/llms.txt", output=tmp_path)
    assert second.has_unchanged("https://x.dev/a", rec.content_hash)
    assert not second.has_unchanged("https://x.dev/a", compute_hash("B\n"))
    assert not second.has_unchanged("https://x.dev/b", rec.content_hash)
    assert second.get_existing_file_path("https://x.dev/a") == "a.md"

    unchanged = second.record_unchanged("https://x.dev/a", rec.content_hash)
    assert unchanged.file == "a.md"
    assert second.get_page_count() == 1


def test_corrupt_ledger_is_ignored(tmp_path):
    (tmp_path / META_FILE).write_text("{not json", encoding="utf-8")
    store = ContentStore("https://x.dev/llms.txt", output=tmp_path)
    assert not store.has_unchanged("https://x.dev/a", "0" * 16)
    assert store.get_existing_file_path("https://x.dev/a") is None

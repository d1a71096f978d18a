"""doccrawl core library.

This package ingests third-party documentation sites into a local markdown
corpus, starting from an explicit manifest (``llms.txt``, ``llms-full.txt``
or a sitemap) and recording enough metadata for incremental re-crawls.

Repo rules:
- Only manifest-listed pages are fetched; links are never followed.
- Crawled content lives under the output directory, never in the repo.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

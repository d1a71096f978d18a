from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import requests

from . import __version__
from .crawl import CrawlConfig, Crawler
from .errors import CrawlError
from .http_client import HttpClient

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doccrawl",
        description="Crawl documentation sites into local markdown files.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    sub = parser.add_subparsers(dest="cmd", required=True)

    crawl_p = sub.add_parser(
        "crawl",
        help="Crawl the pages listed by an llms.txt, llms-full.txt or sitemap",
    )
    crawl_p.add_argument("url", help="Manifest URL")
    crawl_p.add_argument(
        "--rate",
        type=_positive_float,
        default=2.0,
        help="Requests per second (default: 2)",
    )
    crawl_p.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output directory (default: ~/.doccrawl/crawled/<host>)",
    )
    crawl_p.add_argument(
        "--include",
        action="append",
        default=[],
        help="Repeatable path glob; only matching URLs are crawled",
    )
    crawl_p.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Repeatable path glob; matching URLs are skipped",
    )
    crawl_p.add_argument("--dry-run", action="store_true")
    crawl_p.add_argument("--follow-offsite", action="store_true")
    crawl_p.add_argument("--no-robots", action="store_true")
    crawl_p.add_argument(
        "--robots-fail-closed",
        action="store_true",
        help="Deny an origin whose robots.txt cannot be read",
    )
    crawl_p.add_argument("--timeout", type=_positive_float, default=30.0)

    verbosity = crawl_p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true")
    verbosity.add_argument("-q", "--quiet", action="store_true")
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args)

    if args.cmd == "crawl":
        cfg = CrawlConfig(
            url=args.url,
            rate=args.rate,
            output=args.out,
            include=tuple(args.include),
            exclude=tuple(args.exclude),
            dry_run=bool(args.dry_run),
            follow_offsite=bool(args.follow_offsite),
            respect_robots=not bool(args.no_robots),
            robots_fail_open=not bool(args.robots_fail_closed),
        )
        with requests.Session() as session:
            http = HttpClient(session, timeout_s=args.timeout)
            crawler = Crawler(http=http, config=cfg)
            try:
                meta = crawler.crawl()
            except CrawlError as e:
                print(str(e), file=sys.stderr)
                return 2

        if cfg.dry_run:
            print(f"{len(crawler.planned)} URLs would be crawled:")
            for url in crawler.planned:
                print(f"  {url}")
            return 0

        print(f"Crawled {meta['pages']} pages into {crawler.store.dir}")
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Command-line entry point
========================
Crawls one site and writes its sitemap (JSON tree + XML) to the output
directory.

All configuration flows through ``CrawlerRunConfig``: defaults, then
``SITEMAP_CRAWLER_*`` environment variables (``.env`` is honoured), then flags.

Run with: python -m sitemap_crawler https://example.com --depth 2
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import CrawlError, SitemapPersistenceError
from .models import CrawlResult, ProgressUpdate
from .orchestrator import CrawlJob, CrawlOrchestrator
from .progress_store import ProgressStore
from .run_config import CrawlerRunConfig
from .storage import JsonFileCrawlStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CRAWL_FAILED = 1
EXIT_PERSISTENCE_FAILED = 2
EXIT_INTERRUPTED = 130


def _load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()  # tries CWD


def _base_name_from_url(url: str) -> str:
    """Derive a filesystem-safe base name from a URL."""
    parsed = urlparse(url)
    base = parsed.netloc.replace('.', '_').replace(':', '_')
    if parsed.path and parsed.path != '/':
        path_part = parsed.path.strip('/').replace('/', '_')[:30]
        base = f"{base}_{path_part}"
    return base


def _crawl_id_for(url: str) -> str:
    return f"{_base_name_from_url(url)}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m sitemap_crawler',
        description='Sitemap Crawler - render a site with Playwright and build its sitemap',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m sitemap_crawler https://example.com
  python -m sitemap_crawler https://example.com --depth 2 --pages 50
  python -m sitemap_crawler https://example.com --output-xml sitemap.xml --no-robots
        """
    )
    parser.add_argument('url', help='Seed URL to crawl')
    parser.add_argument('--depth', type=int, default=None, help='Maximum crawl depth, 1-5 (default: 3)')
    parser.add_argument('--pages', type=int, default=None, help='Maximum pages to crawl (default: 100)')
    parser.add_argument('--timeout', type=int, default=None, help='Timeout per page in seconds (default: 15)')
    parser.add_argument('--rate', type=float, default=None, help='Delay between pages in seconds (default: 0.05)')
    parser.add_argument('--max-retries', type=int, default=None, help='Retries for transient page errors (default: 2)')
    parser.add_argument(
        '--deny-pattern', type=str, action='append', default=[],
        help='Regex deny-pattern for URLs (repeatable)',
    )
    parser.add_argument('--no-robots', action='store_true', help='Ignore robots.txt')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--output-dir', type=str, default=None, help='Directory for crawl records (default: crawls)')
    parser.add_argument('--output-json', type=str, help='Also write the sitemap tree JSON here')
    parser.add_argument('--output-xml', type=str, help='Also write the XML sitemap here')
    parser.add_argument(
        '--log-level', type=str, default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)',
    )
    return parser


def _export(result: CrawlResult, output_json: Optional[str], output_xml: Optional[str]) -> List[str]:
    exported = []
    if output_json:
        path = Path(output_json)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        exported.append(str(path))
    if output_xml:
        path = Path(output_xml)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(result.xml_content)
        exported.append(str(path))
    return exported


def print_summary(result: CrawlResult, elapsed: float, crawl_id: str, exported: List[str]):
    """Print crawl summary."""
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Crawl id:            {crawl_id}")
    print(f"  Pages found:         {result.pages_found}")
    print(f"  Broken links:        {result.broken_links}")
    print(f"  Duplicate pages:     {result.duplicate_pages}")
    top_level = len(result.sitemap_tree.children or [])
    print(f"  Top-level sections:  {top_level}")
    print(f"  Total time:          {elapsed:.1f}s")
    print(f"  Stop reason:         {result.stop_reason}")
    if exported:
        print("-" * 65)
        for path in exported:
            print(f"  Exported: {path}")
    print("=" * 65)


def main(argv: Optional[List[str]] = None) -> int:
    """Parse argv, build CrawlerRunConfig, run one crawl job."""
    _load_env()
    args = build_parser().parse_args(argv)

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    cfg = CrawlerRunConfig.from_cli_args(args)
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    cfg.log_summary(url)

    def progress_cb(update: ProgressUpdate):
        current = (update.current_url or '')[:70]
        print(f"[{update.progress:3d}%] {update.pages_found}/{cfg.max_pages} pages, "
              f"{update.queue_size} queued  {current}")

    crawl_id = _crawl_id_for(url)
    store = JsonFileCrawlStore(cfg.output_dir)
    orchestrator = CrawlOrchestrator(cfg)
    job = CrawlJob(
        crawl_id, url,
        store=store,
        progress_store=ProgressStore(),
        orchestrator=orchestrator,
        on_progress=progress_cb,
    )

    start = time.time()
    try:
        result = asyncio.run(job.run())
    except KeyboardInterrupt:
        print("\nCrawl interrupted.")
        return EXIT_INTERRUPTED
    except SitemapPersistenceError as exc:
        logger.error(str(exc))
        if exc.result is not None:
            _export(exc.result, args.output_json, args.output_xml)
        return EXIT_PERSISTENCE_FAILED
    except (CrawlError, ValueError) as exc:
        logger.error(f"Crawl failed: {exc}")
        return EXIT_CRAWL_FAILED

    try:
        exported = _export(result, args.output_json, args.output_xml)
    except OSError as exc:
        logger.error(f"Export failed: {exc}")
        return EXIT_PERSISTENCE_FAILED
    exported.insert(0, str(store.sitemap_path(crawl_id)))
    exported.insert(1, str(store.xml_path(crawl_id)))
    print_summary(result, time.time() - start, crawl_id, exported)
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())

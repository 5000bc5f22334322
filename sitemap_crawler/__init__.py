"""
Sitemap Crawler Package
Renders a website with headless Chromium, walks its internal links and
produces a sitemap tree plus a sitemaps.org XML document.

CLI Usage:
    python -m sitemap_crawler <url> [options]

    Options:
        --depth         Maximum crawl depth, 1-5 (default: 3)
        --pages         Maximum pages to crawl (default: 100)
        --timeout       Per-page timeout in seconds (default: 15)
        --rate          Delay between pages (default: 0.05)
        --no-robots     Ignore robots.txt
        --output-json   Also write the sitemap tree JSON
        --output-xml    Also write the XML sitemap
"""

from .errors import (
    BrowserLaunchError,
    CrawlError,
    ErrorKind,
    InvalidSeedUrlError,
    SitemapPersistenceError,
    classify_error,
)
from .fetcher import FetcherConfig, PageFetcher
from .frontier import FrontierOutcome, FrontierScheduler
from .models import CrawlProgress, CrawlResult, CrawlStatus, PageInfo, PageRecord, PageStatus, SitemapNode
from .orchestrator import CrawlJob, CrawlOrchestrator, crawl_website, run_crawl_job
from .progress_store import ProgressStore
from .robots import RobotsPolicy
from .run_config import CrawlerRunConfig
from .scope_filter import ScopeFilter, is_in_scope
from .storage import CrawlStore, JsonFileCrawlStore
from .tree_builder import build_sitemap, count_nodes, to_xml
from .utils import URLNormalizer, normalize_url

__all__ = [
    # Engine
    'crawl_website',
    'CrawlOrchestrator',
    'CrawlResult',
    'CrawlerRunConfig',
    # Components
    'URLNormalizer',
    'normalize_url',
    'ScopeFilter',
    'is_in_scope',
    'RobotsPolicy',
    'PageFetcher',
    'FetcherConfig',
    'FrontierScheduler',
    'FrontierOutcome',
    'build_sitemap',
    'to_xml',
    'count_nodes',
    # Models
    'PageInfo',
    'PageRecord',
    'PageStatus',
    'SitemapNode',
    'CrawlProgress',
    'CrawlStatus',
    # Jobs & persistence
    'CrawlJob',
    'run_crawl_job',
    'ProgressStore',
    'CrawlStore',
    'JsonFileCrawlStore',
    # Errors
    'ErrorKind',
    'classify_error',
    'CrawlError',
    'InvalidSeedUrlError',
    'BrowserLaunchError',
    'SitemapPersistenceError',
]

__version__ = '1.0.0'

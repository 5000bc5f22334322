"""
Crawl Orchestrator
==================
Wires one crawl together:

    validate seed -> robots.txt -> launch Chromium -> frontier loop
        -> sitemap tree + XML -> CrawlResult

and, one level up, ``CrawlJob``: a crawl bound to a crawl id, a
``CrawlStore`` persistence sink and a ``ProgressStore``.

Crawl failures and persistence failures are kept apart: the first raises
``CrawlError``, the second ``SitemapPersistenceError`` carrying the
finished result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Browser, async_playwright

from .errors import BrowserLaunchError, CrawlError, SitemapPersistenceError
from .fetcher import PageFetcher
from .frontier import FrontierScheduler, ProgressCallback, emit_progress
from .models import CrawlProgress, CrawlResult, CrawlStatus, PageStatus, ProgressUpdate
from .progress_store import ProgressStore
from .robots import RobotsPolicy
from .run_config import CrawlerRunConfig
from .scope_filter import ScopeFilter
from .storage import CrawlStore
from .tree_builder import build_sitemap, count_nodes, to_xml
from .utils import normalize_url, origin_of

logger = logging.getLogger(__name__)

_CHROMIUM_ARGS = [
    '--disable-gpu',
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-background-networking',
    '--disable-default-apps',
    '--disable-extensions',
    '--disable-sync',
    '--disable-translate',
    '--no-first-run',
]


@asynccontextmanager
async def launch_browser(headless: bool = True) -> AsyncIterator[Browser]:
    """Start Playwright + Chromium; both are torn down on exit."""
    try:
        playwright = await async_playwright().start()
    except Exception as e:
        raise BrowserLaunchError(f"Could not start Playwright: {e}") from e
    try:
        browser = await playwright.chromium.launch(headless=headless, args=_CHROMIUM_ARGS)
    except Exception as e:
        await playwright.stop()
        raise BrowserLaunchError(f"Could not launch Chromium: {e}") from e

    logger.info(f"Playwright Chromium launched ({'headless' if headless else 'headed'})")
    try:
        yield browser
    finally:
        try:
            await browser.close()
        except Exception as e:
            logger.debug(f"Error closing browser: {e}")
        try:
            await playwright.stop()
        except Exception as e:
            logger.debug(f"Error stopping Playwright: {e}")


class CrawlOrchestrator:
    """
    Runs complete crawls with one ``CrawlerRunConfig``.

    Args:
        config: Run configuration (defaults when omitted)
        browser_factory: ``headless -> async context manager yielding a Browser``
        fetcher_factory: ``(browser, FetcherConfig) -> fetcher``
        robots_loader: ``async (origin, user_agent=...) -> RobotsPolicy | None``
    """

    def __init__(
        self,
        config: Optional[CrawlerRunConfig] = None,
        *,
        browser_factory: Callable = launch_browser,
        fetcher_factory: Callable = PageFetcher,
        robots_loader: Optional[Callable] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.config = config or CrawlerRunConfig()
        self._browser_factory = browser_factory
        self._fetcher_factory = fetcher_factory
        self._robots_loader = robots_loader or RobotsPolicy.aload
        self._clock = clock
        self._sleep = sleep
        self._scheduler: Optional[FrontierScheduler] = None
        self._stop_requested = False

    def stop(self) -> None:
        """Request graceful stop of the running crawl."""
        self._stop_requested = True
        if self._scheduler is not None:
            self._scheduler.stop()

    def run(self, seed_url: str, max_depth: Optional[int] = None) -> CrawlResult:
        """Sync wrapper: run the async crawl from synchronous code."""
        return asyncio.run(self.crawl(seed_url, max_depth))

    async def crawl(
        self,
        seed_url: str,
        max_depth: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CrawlResult:
        """
        Crawl ``seed_url`` and build its sitemap.

        Raises:
            InvalidSeedUrlError / ValueError: bad seed or depth
            BrowserLaunchError: Chromium could not be started
        """
        cfg = self.config if max_depth is None else replace(self.config, max_depth=max_depth)
        cfg.validate(seed_url)
        seed = normalize_url(seed_url)
        origin = origin_of(seed)
        self._stop_requested = False

        scope = ScopeFilter(base_origin=origin, deny_patterns=list(cfg.deny_patterns))
        scope.log_scope()

        logger.info("=" * 65)
        logger.info("CRAWL STARTED")
        logger.info(f"Start URL: {seed}")
        logger.info(f"Scope: {scope.scope_description}")
        logger.info(f"Limits: max_pages={cfg.max_pages}, max_depth={cfg.max_depth}")
        logger.info(f"Timeout: {cfg.timeout_seconds}s/page, retries={cfg.max_retries}")
        logger.info("=" * 65)
        t_start = self._clock()

        robots = None
        if cfg.respect_robots:
            robots = await self._robots_loader(origin, user_agent=cfg.user_agent)

        async with self._browser_factory(cfg.headless) as browser:
            fetcher = self._fetcher_factory(browser, cfg.to_fetcher_config())
            self._scheduler = FrontierScheduler(
                fetcher,
                robots=robots,
                scope_filter=scope,
                user_agent=cfg.user_agent,
                fetch_delay=cfg.fetch_delay,
                progress_interval=cfg.progress_interval,
                clock=self._clock,
                sleep=self._sleep,
            )
            if self._stop_requested:
                self._scheduler.stop()
            try:
                outcome = await self._scheduler.run(seed, cfg.max_depth, cfg.max_pages, on_progress)
            finally:
                self._scheduler = None

        records = outcome.records
        tree = build_sitemap(records, seed)
        result = CrawlResult(
            sitemap_tree=tree,
            pages_found=len(records),
            broken_links=sum(1 for r in records if r.status is PageStatus.BROKEN),
            duplicate_pages=len(outcome.duplicates),
            xml_content=to_xml(records, seed),
            stop_reason=outcome.stop_reason,
        )
        if count_nodes(tree) != result.pages_found:
            logger.warning(
                f"[TREE] Tree holds {count_nodes(tree)} nodes for {result.pages_found} pages"
            )

        if on_progress is not None:
            await emit_progress(on_progress, ProgressUpdate(
                pages_found=result.pages_found, queue_size=0, progress=100,
            ))

        elapsed = self._clock() - t_start
        logger.info("=" * 65)
        logger.info("CRAWL COMPLETE")
        logger.info(f"  Pages found:     {result.pages_found}")
        logger.info(f"  Broken links:    {result.broken_links}")
        logger.info(f"  Duplicate pages: {result.duplicate_pages}")
        logger.info(f"  Blocked (robots): {len(outcome.blocked)}")
        logger.info(f"  Elapsed:         {elapsed:.1f}s")
        logger.info(f"  Stop reason:     {result.stop_reason}")
        logger.info("=" * 65)
        return result


async def crawl_website(
    seed_url: str,
    max_depth: int = 3,
    on_progress: Optional[ProgressCallback] = None,
    config: Optional[CrawlerRunConfig] = None,
) -> CrawlResult:
    """Crawl ``seed_url`` with default settings and return its sitemap."""
    return await CrawlOrchestrator(config).crawl(seed_url, max_depth, on_progress)


# ---------------------------------------------------------------------------
# Crawl jobs
# ---------------------------------------------------------------------------

class CrawlJob:
    """
    One crawl bound to a crawl id and its persistence sinks.

    Progress goes to the ``ProgressStore`` on every callback and to the
    ``CrawlStore`` at most every ``persist_interval`` seconds.
    """

    def __init__(
        self,
        crawl_id: str,
        seed_url: str,
        *,
        store: CrawlStore,
        max_depth: Optional[int] = None,
        progress_store: Optional[ProgressStore] = None,
        orchestrator: Optional[CrawlOrchestrator] = None,
        persist_interval: float = 2.0,
        on_progress: Optional[Callable[[ProgressUpdate], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.crawl_id = crawl_id
        self.seed_url = seed_url
        self.max_depth = max_depth
        self.store = store
        self.progress_store = progress_store if progress_store is not None else ProgressStore()
        self.orchestrator = orchestrator or CrawlOrchestrator()
        self.persist_interval = persist_interval
        self.on_progress = on_progress
        self._clock = clock
        self._last_persist: Optional[float] = None

    def stop(self) -> None:
        self.orchestrator.stop()

    async def run(self) -> CrawlResult:
        logger.info(f"[JOB] Starting crawl {self.crawl_id} for {self.seed_url}")
        self.progress_store.set(CrawlProgress(crawl_id=self.crawl_id, status=CrawlStatus.CRAWLING))
        try:
            self.store.update_crawl(
                self.crawl_id,
                url=self.seed_url,
                maxDepth=self.max_depth or self.orchestrator.config.max_depth,
                status=CrawlStatus.CRAWLING,
            )
        except Exception as exc:
            message = f"Could not record crawl start: {exc}"
            logger.error(f"[JOB] {self.crawl_id}: {message}")
            self.progress_store.update(self.crawl_id, status=CrawlStatus.FAILED, error_message=message)
            raise CrawlError(message) from exc

        try:
            result = await self.orchestrator.crawl(
                self.seed_url, self.max_depth, on_progress=self._on_progress,
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error(f"[JOB] Crawl {self.crawl_id} failed: {message}")
            self._mark_failed(message)
            if isinstance(exc, CrawlError):
                raise
            raise CrawlError(message) from exc

        try:
            self.store.save_sitemap(self.crawl_id, result)
            self.store.update_crawl(
                self.crawl_id,
                status=CrawlStatus.COMPLETED,
                pagesFound=result.pages_found,
                brokenLinks=result.broken_links,
                duplicatePages=result.duplicate_pages,
                completedAt=datetime.now(timezone.utc).isoformat(),
            )
        except Exception as exc:
            message = f"Crawl completed but sitemap creation failed: {exc}"
            logger.error(f"[JOB] {self.crawl_id}: {message}")
            self._mark_failed(message)
            raise SitemapPersistenceError(message, result=result) from exc

        self.progress_store.update(
            self.crawl_id,
            status=CrawlStatus.COMPLETED,
            pages_found=result.pages_found,
            queue_size=0,
            progress=100,
            current_url=None,
        )
        logger.info(f"[JOB] Crawl {self.crawl_id} completed: {result.pages_found} pages")
        return result

    def _on_progress(self, update: ProgressUpdate) -> None:
        self.progress_store.update(
            self.crawl_id,
            pages_found=update.pages_found,
            queue_size=update.queue_size,
            progress=update.progress,
            current_url=update.current_url,
        )
        if self.on_progress is not None:
            self.on_progress(update)
        now = self._clock()
        if self._last_persist is not None and now - self._last_persist < self.persist_interval:
            return
        self._last_persist = now
        try:
            self.store.update_crawl(
                self.crawl_id,
                pagesFound=update.pages_found,
                progress=update.progress,
                currentUrl=update.current_url,
            )
        except Exception as e:
            logger.warning(f"[JOB] Progress write failed for {self.crawl_id}: {e}")

    def _mark_failed(self, message: str) -> None:
        self.progress_store.update(self.crawl_id, status=CrawlStatus.FAILED, error_message=message)
        try:
            self.store.update_crawl(self.crawl_id, status=CrawlStatus.FAILED, errorMessage=message)
        except Exception as e:
            logger.error(f"[JOB] Could not record failure for {self.crawl_id}: {e}")


async def run_crawl_job(
    crawl_id: str,
    seed_url: str,
    max_depth: Optional[int] = None,
    *,
    store: CrawlStore,
    progress_store: Optional[ProgressStore] = None,
    config: Optional[CrawlerRunConfig] = None,
) -> CrawlResult:
    """Build and run a ``CrawlJob`` with a default orchestrator."""
    job = CrawlJob(
        crawl_id,
        seed_url,
        store=store,
        max_depth=max_depth,
        progress_store=progress_store,
        orchestrator=CrawlOrchestrator(config),
    )
    return await job.run()

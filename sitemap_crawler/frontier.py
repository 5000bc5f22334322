"""
Frontier Scheduler
==================
Sequential breadth-first crawl loop.

One frontier entry is processed at a time:

    dequeue -> visited? (duplicate) -> depth? -> robots? -> fetch -> record
            -> enqueue in-scope links at depth + 1

The loop ends when the queue drains, ``page_cap`` records exist, or
``stop()`` was called.  Progress is pushed to an optional callback no more
often than ``progress_interval`` seconds.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Set

from .errors import InvalidSeedUrlError
from .models import FrontierEntry, PageInfo, PageRecord, PageStatus, ProgressUpdate
from .robots import RobotsPolicy
from .scope_filter import ScopeFilter
from .utils import URLNormalizer, origin_of

logger = logging.getLogger(__name__)

DEFAULT_PAGE_CAP = 100
MAX_CRAWL_DELAY = 10.0

ProgressCallback = Callable[[ProgressUpdate], object]


@dataclass
class FrontierOutcome:
    """Everything the scheduler learned, keyed by canonical URL."""
    pages: Dict[str, PageRecord] = field(default_factory=dict)
    duplicates: Set[str] = field(default_factory=set)
    blocked: Set[str] = field(default_factory=set)
    stop_reason: str = "completed"

    @property
    def records(self) -> List[PageRecord]:
        """Records in discovery order."""
        return list(self.pages.values())


def progress_estimate(pages_found: int, queue_size: int) -> int:
    """Completed / (completed + queued), held at 95 until the crawl ends."""
    return min(95, round(100 * pages_found / max(pages_found + queue_size, 1)))


class FrontierScheduler:
    """
    Drives a ``PageFetcher`` over the frontier of one crawl.

    Args:
        fetcher: Anything with ``async fetch(url, depth, scope_origin) -> PageInfo``
        robots: Loaded ``RobotsPolicy`` or None (allow all)
        scope_filter: Scope to enforce; defaults to the seed's origin
        normalizer: ``URLNormalizer`` used on the seed and on every link
        user_agent: Agent name checked against robots rules
        fetch_delay: Courtesy pause between fetches, in seconds
        progress_interval: Minimum seconds between progress callbacks
        clock / sleep: Injectable time sources
    """

    def __init__(
        self,
        fetcher,
        *,
        robots: Optional[RobotsPolicy] = None,
        scope_filter: Optional[ScopeFilter] = None,
        normalizer: Optional[URLNormalizer] = None,
        user_agent: str = "*",
        fetch_delay: float = 0.05,
        progress_interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.robots = robots
        self.scope_filter = scope_filter
        self.normalizer = normalizer or URLNormalizer()
        self.user_agent = user_agent
        self.fetch_delay = fetch_delay
        self.progress_interval = progress_interval
        self._clock = clock
        self._sleep = sleep
        self._stop_requested = False

    def stop(self) -> None:
        """Request graceful stop. Checked before each dequeue."""
        self._stop_requested = True

    @property
    def courtesy_delay(self) -> float:
        delay = self.fetch_delay
        if self.robots is not None:
            robots_delay = self.robots.crawl_delay(self.user_agent)
            if robots_delay:
                delay = max(delay, min(robots_delay, MAX_CRAWL_DELAY))
        return delay

    async def run(
        self,
        seed_url: str,
        max_depth: int,
        page_cap: int = DEFAULT_PAGE_CAP,
        on_progress: Optional[ProgressCallback] = None,
    ) -> FrontierOutcome:
        seed = self.normalizer.normalize(seed_url)
        if seed is None:
            raise InvalidSeedUrlError(f"Cannot crawl seed URL: {seed_url!r}")

        scope = self.scope_filter or ScopeFilter(base_origin=origin_of(seed))
        scope_origin = origin_of(seed)
        delay = self.courtesy_delay

        outcome = FrontierOutcome()
        queue: Deque[FrontierEntry] = deque([FrontierEntry(url=seed, depth=0)])
        visited: Set[str] = set()
        ids = itertools.count()
        last_progress = self._clock()

        while queue and len(outcome.pages) < page_cap:
            if self._stop_requested:
                outcome.stop_reason = "stopped"
                logger.info(f"[FRONTIER] Stop requested, {len(queue)} URL(s) left in queue")
                break

            entry = queue.popleft()
            if entry.url in visited:
                outcome.duplicates.add(entry.url)
                logger.debug(f"[SKIP] Already visited: {entry.url}")
                continue
            if entry.depth > max_depth:
                continue
            if self.robots is not None and not self.robots.is_allowed(entry.url, self.user_agent):
                outcome.blocked.add(entry.url)
                logger.info(f"[ROBOTS] Disallowed, not fetching: {entry.url}")
                continue

            visited.add(entry.url)
            info: PageInfo = await self.fetcher.fetch(entry.url, entry.depth, scope_origin)
            record = PageRecord(
                id=f"node-{next(ids)}",
                url=entry.url,
                title=info.title,
                status=info.status,
                depth=entry.depth,
                outbound_links=list(info.links),
                parent_id=entry.parent_id,
                final_url=info.final_url,
            )
            outcome.pages[entry.url] = record

            if info.ok and entry.depth < max_depth:
                added = self._enqueue(queue, record, visited, outcome.blocked, scope)
                if added:
                    logger.debug(f"[FRONTIER] +{added} from {entry.url} (queue={len(queue)})")

            now = self._clock()
            if on_progress is not None and now - last_progress >= self.progress_interval:
                last_progress = now
                pages_found = len(outcome.pages)
                await emit_progress(on_progress, ProgressUpdate(
                    pages_found=pages_found,
                    queue_size=len(queue),
                    progress=progress_estimate(pages_found, len(queue)),
                    current_url=entry.url,
                ))

            if queue and delay > 0:
                await self._sleep(delay)
        else:
            if queue:
                outcome.stop_reason = f"page cap reached ({page_cap})"

        if not outcome.pages:
            logger.warning(f"[FRONTIER] No pages recorded, synthesizing root for {seed}")
            outcome.pages[seed] = PageRecord(
                id=f"node-{next(ids)}", url=seed, title="Home",
                status=PageStatus.OK, depth=0, final_url=seed,
            )

        self._stop_requested = False
        for url in outcome.duplicates:
            record = outcome.pages.get(url)
            if record is not None and record.status is PageStatus.OK:
                record.status = PageStatus.DUPLICATE

        logger.info(
            f"[FRONTIER] Done: {len(outcome.pages)} pages, "
            f"{len(outcome.duplicates)} duplicates, {len(outcome.blocked)} blocked "
            f"({outcome.stop_reason})"
        )
        return outcome

    def _enqueue(
        self,
        queue: Deque[FrontierEntry],
        record: PageRecord,
        visited: Set[str],
        blocked: Set[str],
        scope: ScopeFilter,
    ) -> int:
        added = 0
        for link in record.outbound_links:
            url = self.normalizer.normalize(link)
            if url is None or url in visited or url in blocked:
                continue
            if not scope.accept(url):
                continue
            queue.append(FrontierEntry(url=url, depth=record.depth + 1, parent_id=record.id))
            added += 1
        return added


async def emit_progress(callback: ProgressCallback, update: ProgressUpdate) -> None:
    """Invoke a progress callback (sync or async); its failures are logged, not raised."""
    try:
        result = callback(update)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"[PROGRESS] Progress callback failed: {e}")

"""
Progress Store
==============
In-memory, TTL-indexed cache of live crawl progress, keyed by crawl id.

Running crawls never expire.  Once a crawl is marked completed or failed
its entry lives ``ttl_seconds`` longer, so late pollers still see the
terminal state, and is then evicted on the next access.
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Optional

from .models import CrawlProgress

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class ProgressStore:
    """
    Thread-safe progress cache.

    Args:
        ttl_seconds: Lifetime of a finished entry
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CrawlProgress] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    def set(self, progress: CrawlProgress) -> CrawlProgress:
        with self._lock:
            self._store(progress)
            return progress

    def update(self, crawl_id: str, **fields) -> CrawlProgress:
        """Merge ``fields`` into the entry, creating it if missing."""
        with self._lock:
            self._evict_expired()
            current = self._entries.get(crawl_id) or CrawlProgress(crawl_id=crawl_id)
            progress = replace(current, **fields)
            self._store(progress)
            return progress

    def get(self, crawl_id: str) -> Optional[CrawlProgress]:
        with self._lock:
            self._evict_expired()
            return self._entries.get(crawl_id)

    def discard(self, crawl_id: str) -> None:
        with self._lock:
            self._entries.pop(crawl_id, None)
            self._expires_at.pop(crawl_id, None)

    def expire(self, crawl_id: str, ttl: Optional[float] = None) -> None:
        """Schedule eviction ``ttl`` seconds from now (default: the store TTL)."""
        with self._lock:
            if crawl_id in self._entries:
                self._expires_at[crawl_id] = self._clock() + (self.ttl_seconds if ttl is None else ttl)

    def __contains__(self, crawl_id: str) -> bool:
        return self.get(crawl_id) is not None

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._entries)

    def _store(self, progress: CrawlProgress) -> None:
        self._entries[progress.crawl_id] = progress
        if progress.status.finished:
            self._expires_at.setdefault(progress.crawl_id, self._clock() + self.ttl_seconds)
        else:
            self._expires_at.pop(progress.crawl_id, None)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [cid for cid, at in self._expires_at.items() if at <= now]
        for cid in expired:
            self._entries.pop(cid, None)
            self._expires_at.pop(cid, None)
            logger.debug(f"[PROGRESS] Evicted finished crawl {cid}")

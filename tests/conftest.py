"""
Shared fakes for the crawler tests.

No test launches a browser or touches the network: the Playwright objects
the fetcher drives are replaced by small scripted stand-ins, and the
scheduler / orchestrator get a ``FakeFetcher`` that serves canned pages.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List, Optional

import pytest

from sitemap_crawler import page_scripts
from sitemap_crawler.fetcher import FetcherConfig
from sitemap_crawler.models import PageInfo, PageStatus
from sitemap_crawler.utils import strip_fragment


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class SleepRecorder:
    """Async ``sleep`` replacement that only records the requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Monotonic clock advancing ``step`` seconds per reading."""

    def __init__(self, start: float = 0.0, step: float = 1.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class ManualClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Playwright stand-ins
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.status = status
        self.headers = {"content-type": "text/html; charset=utf-8"} if headers is None else headers


class FakePage:
    """
    Scripted page.

    ``link_batches`` are returned by successive link extractions (the last
    batch repeats).  ``evaluate_errors`` maps a page script to exceptions
    raised by its first calls; ``hanging_scripts`` maps a page script to the
    number of its first calls that never answer.  ``goto_errors`` are raised
    by successive navigations.
    """

    def __init__(
        self,
        response: Optional[FakeResponse] = None,
        *,
        title: str = "Example Page",
        links: Iterable[str] = (),
        link_batches: Optional[List[List[str]]] = None,
        final_url: Optional[str] = None,
        goto_error: Optional[BaseException] = None,
        goto_errors: Optional[List[BaseException]] = None,
        evaluate_errors: Optional[Dict[str, List[BaseException]]] = None,
        hanging_scripts: Optional[Dict[str, int]] = None,
        no_response: bool = False,
    ):
        self.response = None if no_response else (response or FakeResponse())
        self.title = title
        self.link_batches = link_batches if link_batches is not None else [list(links)]
        self.final_url = final_url
        self.goto_error = goto_error
        self.goto_errors = list(goto_errors or [])
        self.evaluate_errors = {k: list(v) for k, v in (evaluate_errors or {}).items()}
        self.hanging_scripts = dict(hanging_scripts or {})
        self.url = "about:blank"
        self.closed = False
        self.handlers: Dict[str, list] = {}
        self.goto_calls: List[str] = []
        self.evaluate_calls: List[tuple] = []

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(url)
        if self.goto_errors:
            raise self.goto_errors.pop(0)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self.final_url or url
        return self.response

    async def evaluate(self, script, arg=None):
        self.evaluate_calls.append((script, arg))
        errors = self.evaluate_errors.get(script)
        if errors:
            raise errors.pop(0)
        if self.hanging_scripts.get(script, 0) > 0:
            self.hanging_scripts[script] -= 1
            await asyncio.sleep(10)
        if script == page_scripts.EXTRACT_TITLE:
            return self.title
        if script == page_scripts.EXTRACT_LINKS:
            batch = self.link_batches[0]
            if len(self.link_batches) > 1:
                self.link_batches.pop(0)
            return list(batch)
        if script == page_scripts.SET_HASH:
            self.url = strip_fragment(self.url) + arg
            return None
        if script == page_scripts.WAIT_FOR_DOM_QUIET:
            return True
        if script == page_scripts.EXPAND_NAVIGATION:
            return 0
        return None

    async def wait_for_function(self, script, arg=None, timeout=None):
        return True

    def is_closed(self):
        return self.closed

    def scripts_called(self) -> List[str]:
        return [script for script, _ in self.evaluate_calls]


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False
        self.routes = []

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True
        self.page.closed = True


class FakeBrowser:
    """Hands out one scripted page per ``new_context()`` call."""

    def __init__(self, *pages: FakePage):
        self._pages = list(pages)
        self.contexts: List[FakeContext] = []
        self.context_kwargs: List[dict] = []

    async def new_context(self, **kwargs):
        if not self._pages:
            raise AssertionError("FakeBrowser ran out of scripted pages")
        self.context_kwargs.append(kwargs)
        context = FakeContext(self._pages.pop(0))
        self.contexts.append(context)
        return context


# ---------------------------------------------------------------------------
# Scheduler-level fakes
# ---------------------------------------------------------------------------

def ok_page(url: str, *links: str, title: Optional[str] = None) -> PageInfo:
    return PageInfo(final_url=url, title=title or f"Page {url}", status=PageStatus.OK, links=list(links))


def broken_page(url: str, title: str = "Error 404: Not Found") -> PageInfo:
    return PageInfo(final_url=url, title=title, status=PageStatus.BROKEN, links=[])


class FakeFetcher:
    """Serves canned ``PageInfo`` objects; unknown URLs come back as 404."""

    def __init__(self, site: Dict[str, PageInfo]):
        self.site = site
        self.calls: List[tuple] = []

    async def fetch(self, url, depth=0, scope_origin=None):
        self.calls.append((url, depth))
        return self.site.get(url) or broken_page(url)

    @property
    def fetched_urls(self) -> List[str]:
        return [url for url, _ in self.calls]


@asynccontextmanager
async def fake_browser_factory(headless=True):
    yield FakeBrowser()


async def no_robots(origin, user_agent="*"):
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def fast_config() -> FetcherConfig:
    """FetcherConfig with every fixed wait at zero."""
    return FetcherConfig(
        post_load_wait=0,
        spa_render_wait=0,
        api_idle_timeout=0,
        scroll_pause=0,
        hash_bootstrap_wait=0,
        expand_menus_wait=0,
        empty_links_retry_wait=0,
        evaluate_timeout=1.0,
    )

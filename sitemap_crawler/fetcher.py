"""
Page Fetcher
============
Renders one URL in headless Chromium and reports its title, outbound links
and outcome.

Each fetch runs as an explicit state machine::

    NAVIGATING -> SETTLING -> EXTRACTING -> OK | BROKEN
          \\           |           /
           +------ RECOVERING ---+      (rendering context lost mid-read)

- One isolated ``BrowserContext`` per fetch (no cookies or page state leak
  between URLs); it is always closed in ``finally``
- Navigation waits for ``domcontentloaded``, never for network idle
- Hash routes (``#/...``) load the bare document first, then switch route
- Settling: DOM-mutation quiescence, framework detection, content-ready
  check, in-flight API drain, scroll passes for lazy navigation
- HTTP 429 honours ``Retry-After`` and re-runs the whole fetch
- Transient network errors re-run the whole fetch with linear backoff
- ``fetch()`` never raises: every failure becomes a ``broken`` ``PageInfo``
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlsplit

from playwright.async_api import Browser, BrowserContext, Page, Response, Route
from playwright.async_api import Error as PlaywrightError

from . import page_scripts
from .errors import ErrorKind, FetchError, classify_error
from .models import PageInfo, PageStatus
from .scope_filter import is_in_scope
from .utils import URLNormalizer, is_hash_route, strip_fragment

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
_API_RESOURCE_TYPES = frozenset(["xhr", "fetch"])

SleepFn = Callable[[float], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class FetcherConfig:
    """Timings and retry budgets for one ``PageFetcher``. Every wait has a ceiling."""
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout_ms: int = 15000

    # Whole-fetch retries for transient network errors (linear backoff)
    max_retries: int = 2
    retry_delay: float = 0.5

    # HTTP 429 handling
    max_rate_limit_retries: int = 3
    rate_limit_backoff: float = 5.0      # used when Retry-After is absent
    max_retry_after: float = 60.0

    # Reads that can hit a torn-down execution context
    max_evaluate_attempts: int = 3
    evaluate_backoff: float = 0.5
    evaluate_timeout: float = 5.0

    # Settling
    post_load_wait: float = 1.0
    dom_quiet_ms: int = 1000
    dom_settle_ceiling_ms: int = 3000
    spa_render_wait: float = 1.5
    content_ready_timeout_ms: int = 5000
    api_idle_timeout: float = 5.0
    api_poll_interval: float = 0.1
    scroll_positions: Tuple[float, ...] = (0.5, 1.0, 0.0)
    scroll_pause: float = 0.3

    # Hash routes
    hash_bootstrap_wait: float = 1.0
    hash_route_timeout_ms: int = 3000

    # Extraction
    expand_menus_wait: float = 0.5
    empty_links_retry_wait: float = 1.5

    blocked_resource_types: Tuple[str, ...] = ("image", "font", "media")


class FetchState(enum.Enum):
    NAVIGATING = "navigating"
    SETTLING = "settling"
    EXTRACTING = "extracting"
    RECOVERING = "recovering"
    OK = "ok"
    BROKEN = "broken"


@dataclass
class FetchAttempt:
    """State of one pass through the fetch state machine."""
    url: str
    state: FetchState = FetchState.NAVIGATING
    history: List[FetchState] = field(default_factory=lambda: [FetchState.NAVIGATING])
    recoveries: int = 0
    _interrupted: Optional[FetchState] = field(default=None, repr=False)

    def advance(self, state: FetchState) -> None:
        logger.debug(f"[FETCH] {self.url[:80]}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def recover(self, kind: ErrorKind) -> None:
        if self.state is not FetchState.RECOVERING:
            self._interrupted = self.state
            self.advance(FetchState.RECOVERING)
        self.recoveries += 1
        logger.info(f"  [RECOVER] {kind.reason} during {self._interrupted.value} ({self.url[:70]})")

    def resume(self) -> None:
        if self.state is FetchState.RECOVERING and self._interrupted is not None:
            self.advance(self._interrupted)
            self._interrupted = None


class _RateLimited(FetchError):
    def __init__(self, delay: float):
        super().__init__(ErrorKind.RATE_LIMITED, f"retry in {delay:.1f}s")
        self.delay = delay


# ---------------------------------------------------------------------------
# In-flight API request tracking
# ---------------------------------------------------------------------------

class RequestTracker:
    """Counts in-flight XHR/fetch requests of one page."""

    def __init__(self):
        self.pending = 0

    def attach(self, page: Page) -> None:
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_done)
        page.on("requestfailed", self._on_done)

    def _on_request(self, request) -> None:
        if request.resource_type in _API_RESOURCE_TYPES:
            self.pending += 1

    def _on_done(self, request) -> None:
        if request.resource_type in _API_RESOURCE_TYPES:
            self.pending = max(0, self.pending - 1)

    async def wait_idle(self, timeout: float, sleep: SleepFn, poll: float = 0.1) -> bool:
        """Poll until no API request is pending or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while self.pending > 0 and time.monotonic() < deadline:
            await sleep(poll)
        return self.pending == 0


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class PageFetcher:
    """
    Fetches rendered pages through a shared Playwright ``Browser``.

    Usage::

        fetcher = PageFetcher(browser, FetcherConfig())
        info = await fetcher.fetch("https://example.com/", depth=0,
                                   scope_origin="https://example.com")
    """

    def __init__(
        self,
        browser: Browser,
        config: Optional[FetcherConfig] = None,
        *,
        normalizer: Optional[URLNormalizer] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.browser = browser
        self.config = config or FetcherConfig()
        self.normalizer = normalizer or URLNormalizer()
        self._sleep = sleep
        self.last_attempt: Optional[FetchAttempt] = None

    async def fetch(self, url: str, depth: int = 0, scope_origin: Optional[str] = None) -> PageInfo:
        """Fetch ``url``; always returns a ``PageInfo``, never raises."""
        cfg = self.config
        logger.info(f"[{depth}] Crawling: {url[:100]}")
        retries = 0
        rate_limited = 0

        while True:
            try:
                info = await self._fetch_once(url)
            except asyncio.CancelledError:
                raise
            except _RateLimited as exc:
                if rate_limited >= cfg.max_rate_limit_retries:
                    logger.warning(f"  [BROKEN] {url[:80]} - still rate limited after {rate_limited} waits")
                    return self._broken(url, f"Error: {ErrorKind.RATE_LIMITED.reason}")
                rate_limited += 1
                logger.warning(f"  [RETRY] Rate limited (429), waiting {exc.delay:.1f}s before retry")
                await self._sleep(exc.delay)
                continue
            except Exception as exc:
                kind = classify_error(exc)
                if kind.retryable and retries < cfg.max_retries:
                    retries += 1
                    delay = cfg.retry_delay * retries
                    logger.info(
                        f"  [RETRY] {kind.reason} - attempt {retries}/{cfg.max_retries} "
                        f"after {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue
                logger.warning(f"  [BROKEN] Unreachable: {url[:80]} - {kind.reason} ({exc})")
                return self._broken(url, f"Error: {kind.reason}")

            if info.ok and scope_origin:
                internal = sum(1 for link in info.links if is_in_scope(link, scope_origin))
                logger.info(
                    f"  Found: \"{info.title[:60]}\" "
                    f"({len(info.links)} links, {internal} internal)"
                )
            return info

    # ------------------------------------------------------------------
    # One pass through the state machine
    # ------------------------------------------------------------------

    async def _fetch_once(self, url: str) -> PageInfo:
        cfg = self.config
        attempt = FetchAttempt(url=url)
        self.last_attempt = attempt
        context: BrowserContext = await self.browser.new_context(
            user_agent=cfg.user_agent,
            viewport={'width': cfg.viewport_width, 'height': cfg.viewport_height},
        )
        try:
            if cfg.blocked_resource_types:
                await context.route("**/*", self._route_handler)
            page = await context.new_page()
            tracker = RequestTracker()
            tracker.attach(page)

            response = await self._navigate(page, url, attempt)
            broken = self._check_response(url, response)
            if broken is not None:
                attempt.advance(FetchState.BROKEN)
                return broken

            attempt.advance(FetchState.SETTLING)
            await self._settle(page, tracker, attempt)

            attempt.advance(FetchState.EXTRACTING)
            if is_hash_route(url):
                await self._ensure_hash_route(page, url, attempt)
            final_url = self._final_url(page, url)

            title = await self._read(page, page_scripts.EXTRACT_TITLE, attempt=attempt, required=True)
            links = await self._extract_links(page, final_url, attempt)
            if not links:
                logger.info("  No links found, waiting for dynamic content...")
                await self._sleep(cfg.empty_links_retry_wait)
                await self._read(page, page_scripts.SCROLL_TO, 0.0, attempt=attempt)
                links = await self._extract_links(page, final_url, attempt)
                if links:
                    logger.info(f"  Found {len(links)} links on retry")

            attempt.advance(FetchState.OK)
            return PageInfo(
                final_url=final_url,
                title=(title or "").strip() or "Untitled",
                status=PageStatus.OK,
                links=links,
            )
        except Exception:
            attempt.advance(FetchState.BROKEN)
            raise
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"[FETCH] Context close failed: {e}")

    async def _route_handler(self, route: Route) -> None:
        """Block heavy resources that never carry links."""
        try:
            if route.request.resource_type in self.config.blocked_resource_types:
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError:
            # Page already gone
            pass

    # ------------------------------------------------------------------
    # NAVIGATING
    # ------------------------------------------------------------------

    async def _navigate(self, page: Page, url: str, attempt: FetchAttempt) -> Optional[Response]:
        cfg = self.config
        if not is_hash_route(url):
            return await self._goto(page, url, attempt)

        base_url = strip_fragment(url)
        route_hash = "#" + urlsplit(url).fragment
        logger.info(f"  Hash route detected, loading {base_url[:80]} first")
        response = await self._goto(page, base_url, attempt)
        if response is None or response.status >= 400:
            return response

        await self._sleep(cfg.hash_bootstrap_wait)
        await self._read(page, page_scripts.SET_HASH, route_hash, attempt=attempt)
        await self._wait_for(page, page_scripts.HASH_APPLIED, route_hash, cfg.hash_route_timeout_ms)
        return response

    async def _goto(self, page: Page, url: str, attempt: FetchAttempt) -> Optional[Response]:
        """
        ``page.goto`` that survives the frame being swapped out mid-load
        (client-side redirects), within the same budget as page reads.
        """
        cfg = self.config
        for n in range(1, cfg.max_evaluate_attempts + 1):
            try:
                response = await page.goto(
                    url, wait_until="domcontentloaded", timeout=cfg.navigation_timeout_ms,
                )
                attempt.resume()
                return response
            except PlaywrightError as exc:
                kind = classify_error(exc)
                if not kind.context_lost:
                    raise
                if n == cfg.max_evaluate_attempts:
                    attempt.resume()
                    raise FetchError(ErrorKind.CONTEXT_LOST, f"navigation gave up after {n} attempts") from exc
                attempt.recover(kind)
                await self._sleep(cfg.evaluate_backoff * n)

    def _check_response(self, url: str, response: Optional[Response]) -> Optional[PageInfo]:
        """Return a broken ``PageInfo`` for terminal responses, raise for retryable ones."""
        if response is None:
            raise FetchError(ErrorKind.NO_RESPONSE, url)

        status = response.status
        if status == 429:
            raise _RateLimited(self._retry_after(response.headers))
        if status >= 400:
            title = _describe_status(status)
            logger.warning(f"  [BROKEN] ({status}) {url[:80]} - {title}")
            return self._broken(url, title)

        content_type = (response.headers.get("content-type") or "").lower()
        if content_type and not any(t in content_type for t in _HTML_CONTENT_TYPES):
            mime = content_type.split(";")[0].strip()
            logger.info(f"  [BROKEN] {url[:80]} - non-HTML response ({mime})")
            return self._broken(url, f"Error: {ErrorKind.NON_HTML.reason} ({mime})")
        return None

    def _retry_after(self, headers: dict) -> float:
        cfg = self.config
        raw = (headers or {}).get("retry-after")
        delay = cfg.rate_limit_backoff
        if raw:
            raw = raw.strip()
            if raw.isdigit():
                delay = float(raw)
            else:
                try:
                    when = parsedate_to_datetime(raw)
                    delay = (when - datetime.now(timezone.utc)).total_seconds()
                except (TypeError, ValueError):
                    pass
        return max(0.0, min(delay, cfg.max_retry_after))

    # ------------------------------------------------------------------
    # SETTLING
    # ------------------------------------------------------------------

    async def _settle(self, page: Page, tracker: RequestTracker, attempt: FetchAttempt) -> None:
        cfg = self.config
        await self._sleep(cfg.post_load_wait)

        quiet = await self._read(
            page, page_scripts.WAIT_FOR_DOM_QUIET,
            {'quietMs': cfg.dom_quiet_ms, 'ceilingMs': cfg.dom_settle_ceiling_ms},
            attempt=attempt, fallback=False,
            timeout=max(cfg.evaluate_timeout, cfg.dom_settle_ceiling_ms / 1000 + 1),
        )
        logger.debug(f"  DOM {'settled' if quiet else 'still changing at ceiling'}")

        framework = await self._read(page, page_scripts.DETECT_FRAMEWORK, attempt=attempt)
        if framework:
            logger.info(f"  SPA framework detected ({framework}), waiting for render")
            await self._sleep(cfg.spa_render_wait)

        await self._wait_for(page, page_scripts.CONTENT_READY, None, cfg.content_ready_timeout_ms)

        if tracker.pending:
            logger.info(f"  Waiting for {tracker.pending} API request(s) to complete...")
            if not await tracker.wait_idle(cfg.api_idle_timeout, self._sleep, cfg.api_poll_interval):
                logger.info("  Timeout waiting for API requests, continuing")

        for fraction in cfg.scroll_positions:
            await self._read(page, page_scripts.SCROLL_TO, fraction, attempt=attempt)
            await self._sleep(cfg.scroll_pause)

    async def _ensure_hash_route(self, page: Page, url: str, attempt: FetchAttempt) -> None:
        """Re-apply the route once if the app navigated away from it."""
        expected = urlsplit(url).fragment
        if urlsplit(self._current_url(page, url)).fragment == expected:
            return
        logger.info(f"  Hash route #{expected[:60]} not active, re-applying")
        await self._read(page, page_scripts.SET_HASH, "#" + expected, attempt=attempt)
        await self._wait_for(page, page_scripts.HASH_APPLIED, "#" + expected,
                             self.config.hash_route_timeout_ms)

    # ------------------------------------------------------------------
    # EXTRACTING
    # ------------------------------------------------------------------

    async def _extract_links(self, page: Page, final_url: str, attempt: FetchAttempt) -> List[str]:
        await self._read(page, page_scripts.EXPAND_NAVIGATION, attempt=attempt, fallback=0)
        await self._sleep(self.config.expand_menus_wait)

        raw = await self._read(page, page_scripts.EXTRACT_LINKS, attempt=attempt, required=True)
        links: List[str] = []
        seen = set()
        for href in raw or []:
            if not isinstance(href, str):
                continue
            normalized = self.normalizer.normalize(href, final_url)
            if normalized and normalized not in seen:
                seen.add(normalized)
                links.append(normalized)
        return links

    def _current_url(self, page: Page, fallback: str) -> str:
        try:
            if page.is_closed():
                return fallback
            return page.url or fallback
        except PlaywrightError:
            return fallback

    def _final_url(self, page: Page, url: str) -> str:
        return self.normalizer.normalize(self._current_url(page, url)) or url

    # ------------------------------------------------------------------
    # Context-loss tolerant page access (RECOVERING)
    # ------------------------------------------------------------------

    async def _read(
        self,
        page: Page,
        script: str,
        arg: Any = None,
        *,
        attempt: FetchAttempt,
        required: bool = False,
        fallback: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Evaluate ``script`` in the page, retrying when the execution context
        is torn down by an in-flight client-side navigation.

        Optional reads return ``fallback`` on failure.  Required reads raise
        ``FetchError(CONTEXT_LOST)`` once the retry budget is spent,
        ``FetchError(TIMEOUT)`` when the page stops answering, and let other
        errors propagate.
        """
        cfg = self.config
        timeout = timeout or cfg.evaluate_timeout
        last_kind = ErrorKind.CONTEXT_LOST

        for n in range(1, cfg.max_evaluate_attempts + 1):
            if page.is_closed():
                break
            try:
                result = await asyncio.wait_for(page.evaluate(script, arg), timeout=timeout)
                attempt.resume()
                return result
            except asyncio.TimeoutError:
                attempt.resume()
                if required:
                    raise FetchError(ErrorKind.TIMEOUT, f"page script did not return within {timeout:.1f}s")
                logger.debug(f"  Page script timed out after {timeout:.1f}s")
                return fallback
            except PlaywrightError as exc:
                last_kind = classify_error(exc)
                if not last_kind.context_lost:
                    if required:
                        raise
                    logger.debug(f"  Page script failed ({last_kind.reason}): {exc}")
                    return fallback

            if n < cfg.max_evaluate_attempts:
                attempt.recover(last_kind)
                await self._sleep(cfg.evaluate_backoff * n)

        attempt.resume()
        if required:
            raise FetchError(ErrorKind.CONTEXT_LOST, f"gave up after {cfg.max_evaluate_attempts} attempts")
        return fallback

    async def _wait_for(self, page: Page, script: str, arg: Any, timeout_ms: int) -> bool:
        """Bounded ``wait_for_function``; a timeout or lost context just moves on."""
        try:
            await page.wait_for_function(script, arg=arg, timeout=timeout_ms)
            return True
        except PlaywrightError as exc:
            kind = classify_error(exc)
            if kind.context_lost:
                logger.info("  Execution context destroyed during wait, continuing")
            else:
                logger.debug(f"  Wait ended without condition ({kind.reason})")
            return False

    @staticmethod
    def _broken(url: str, title: str) -> PageInfo:
        return PageInfo(final_url=url, title=title, status=PageStatus.BROKEN, links=[])


def _describe_status(status: int) -> str:
    try:
        phrase = HTTPStatus(status).phrase
    except ValueError:
        phrase = "HTTP error"
    return f"Error {status}: {phrase}"

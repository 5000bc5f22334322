"""
Error Taxonomy
==============
Closed set of failure kinds produced by the page fetcher, plus the
crawl-level and orchestration-level exceptions raised to callers.

Playwright surfaces almost every failure as a generic ``Error`` whose
message carries the real cause (``net::ERR_NAME_NOT_RESOLVED``,
``Execution context was destroyed`` ...).  ``classify_error()`` is the ONLY
place that inspects those messages; everything downstream (retry policy,
broken-page titles) matches on ``ErrorKind`` members.

Levels
------
- Page-level      ``FetchError``               never leaves the fetcher
- Crawl-level     ``CrawlError``               aborts one crawl
- Orchestration   ``SitemapPersistenceError``  crawl finished, artifact write failed
"""

from __future__ import annotations

import asyncio
import enum
import re
from typing import TYPE_CHECKING, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

if TYPE_CHECKING:
    from .models import CrawlResult


class ErrorKind(enum.Enum):
    """Failure kinds with their human-readable reason."""

    TIMEOUT = "Request timeout"
    DNS = "DNS lookup failed - domain not found"
    CONNECTION_RESET = "Connection reset by server"
    CONNECTION_REFUSED = "Connection refused - server not responding"
    TLS = "SSL/TLS certificate error"
    NETWORK = "Network error"
    CONTEXT_LOST = "Context destroyed"
    RATE_LIMITED = "Rate limited (429)"
    HTTP_STATUS = "HTTP error"
    NON_HTML = "Non-HTML content"
    NO_RESPONSE = "No response received"
    UNKNOWN = "Unknown error"

    @property
    def reason(self) -> str:
        return self.value

    @property
    def retryable(self) -> bool:
        """Transient kinds that justify re-running the whole page fetch."""
        return self in _RETRYABLE

    @property
    def context_lost(self) -> bool:
        return self is ErrorKind.CONTEXT_LOST


_RETRYABLE = frozenset({
    ErrorKind.TIMEOUT,
    ErrorKind.DNS,
    ErrorKind.CONNECTION_RESET,
    ErrorKind.CONNECTION_REFUSED,
    ErrorKind.TLS,
    ErrorKind.NETWORK,
})

# Chromium net error codes -> kind.  Order matters: first match wins.
_NET_ERROR_KINDS = (
    (re.compile(r"ERR_NAME_NOT_RESOLVED|ERR_NAME_RESOLUTION_FAILED"), ErrorKind.DNS),
    (re.compile(r"ERR_CONNECTION_RESET|ERR_CONNECTION_CLOSED|ERR_EMPTY_RESPONSE"), ErrorKind.CONNECTION_RESET),
    (re.compile(r"ERR_CONNECTION_REFUSED|ERR_ADDRESS_UNREACHABLE"), ErrorKind.CONNECTION_REFUSED),
    (re.compile(r"ERR_CERT_|ERR_SSL_|SSL_ERROR|certificate", re.IGNORECASE), ErrorKind.TLS),
    (re.compile(r"ERR_TIMED_OUT|ERR_CONNECTION_TIMED_OUT"), ErrorKind.TIMEOUT),
    (re.compile(r"net::ERR_"), ErrorKind.NETWORK),
)

_CONTEXT_LOST_RE = re.compile(
    r"execution context was destroyed|execution context destroyed"
    r"|target (page, context or browser )?(has been )?closed"
    r"|target closed|session closed|frame was detached"
    r"|cannot find context with specified id",
    re.IGNORECASE,
)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised while driving a page onto an ``ErrorKind``."""
    if isinstance(exc, FetchError):
        return exc.kind
    if isinstance(exc, (PlaywrightTimeout, asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT

    message = str(exc) or ""
    if isinstance(exc, PlaywrightError) or type(exc).__name__ == "TargetClosedError":
        if _CONTEXT_LOST_RE.search(message) or type(exc).__name__ == "TargetClosedError":
            return ErrorKind.CONTEXT_LOST
        for pattern, kind in _NET_ERROR_KINDS:
            if pattern.search(message):
                return kind
        if "Timeout" in message and "exceeded" in message:
            return ErrorKind.TIMEOUT
        return ErrorKind.UNKNOWN

    if isinstance(exc, ConnectionResetError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, OSError) and "ssl" in type(exc).__module__.lower():
        return ErrorKind.TLS
    return ErrorKind.UNKNOWN


class FetchError(Exception):
    """Page-level failure carrying its kind. Internal to the fetcher."""

    def __init__(self, kind: ErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.reason}: {detail}" if detail else kind.reason)


class CrawlError(Exception):
    """Crawl-level fatal error: the whole crawl is aborted."""


class InvalidSeedUrlError(CrawlError, ValueError):
    """The seed URL is not an absolute http(s) URL."""


class BrowserLaunchError(CrawlError):
    """The rendering engine could not be started."""


class SitemapPersistenceError(Exception):
    """The crawl succeeded but its sitemap artifact could not be written."""

    def __init__(self, message: str, result: Optional["CrawlResult"] = None):
        super().__init__(message)
        self.result = result

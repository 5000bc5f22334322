"""
Scope Filter
=============
Same-origin scope enforcement for the crawl frontier.

A URL is in scope when it points at the same host and the same effective
port as the crawl's base origin.  The scheme is ignored:
sites routinely bounce between ``http`` and ``https`` and both halves
belong to the same site.

- Host comparison is case-insensitive
- An explicit port equal to its scheme default (80 / 443) counts as no
  port, so ``http://h`` and ``https://h:443`` share a scope while
  ``https://h:8443`` does not
- Anything that fails to parse is out of scope (fail closed)

Public API
----------
- ``is_in_scope(url, base_origin)``: one-shot boolean check
- ``ScopeFilter``: per-crawl filter with deny-patterns
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class _HostPort(NamedTuple):
    host: str
    port: Optional[int]      # None = scheme default (80 / 443)


def _host_port(url: str) -> Optional[_HostPort]:
    """
    Resolve ``url`` to ``(host, effective_port)``.

    A value without a scheme (``example.com:8080``) is read as ``http://``,
    so a bare ``host[:port]`` origin works too.
    """
    if not url:
        return None
    url = url.strip()
    if "://" not in url:
        url = f"http://{url}"
    try:
        p = urlsplit(url)
        port = p.port
        host = p.hostname
    except ValueError:
        return None

    scheme = p.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not host:
        return None
    if port == _DEFAULT_PORTS[scheme]:
        port = None
    return _HostPort(host=host.lower(), port=port)


def is_in_scope(url: str, base_origin: str) -> bool:
    """
    Check whether *url* belongs to the crawl rooted at *base_origin*.

    Parameters
    ----------
    url : str
        Absolute candidate URL.
    base_origin : str
        Origin of the seed (``https://example.com``) or a bare ``host[:port]``.
    """
    cand = _host_port(url)
    base = _host_port(base_origin)
    if cand is None or base is None:
        return False
    return cand == base


@dataclass
class ScopeFilter:
    """
    Reusable scope enforcer for a single crawl session.

    Parameters
    ----------
    base_origin : str
        Origin (or any URL) of the seed page.
    deny_patterns : list[str]
        Regex patterns; any URL whose full string matches is rejected.
        Patterns are compiled once at init.
    """

    base_origin: str = ""
    deny_patterns: List[str] = field(default_factory=list)

    _base: Optional[_HostPort] = field(init=False, repr=False, default=None)
    _compiled_deny: List[re.Pattern] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self):
        self._base = _host_port(self.base_origin)
        if self._base is None and self.base_origin:
            logger.warning(f"[SCOPE] Could not parse base origin: {self.base_origin}")

        self._compiled_deny = []
        for pat in self.deny_patterns:
            try:
                self._compiled_deny.append(re.compile(pat, re.IGNORECASE))
            except re.error as exc:
                logger.warning(f"[SCOPE] Invalid deny-pattern '{pat}': {exc}")

    def accept(self, url: str) -> bool:
        """True if *url* is same-origin and matches no deny-pattern."""
        if self._base is None:
            return False
        cand = _host_port(url)
        if cand is None or cand != self._base:
            return False
        return not any(rx.search(url) for rx in self._compiled_deny)

    def is_denied(self, url: str) -> bool:
        return any(rx.search(url) for rx in self._compiled_deny)

    @property
    def scope_description(self) -> str:
        if self._base is None:
            return "(unknown)"
        port = f":{self._base.port}" if self._base.port else ""
        return f"Origin: {self._base.host}{port} (http/https)"

    def log_scope(self) -> None:
        logger.info(f"[SCOPE] {self.scope_description}")
        if self._compiled_deny:
            logger.info(f"[SCOPE] Deny patterns: {len(self._compiled_deny)}")

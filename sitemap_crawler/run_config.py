"""
Unified Run Configuration
=========================
Single source of truth for the crawler's defaults and runtime limits.

The CLI, the orchestrator and the crawl job all read from this object;
the fetcher's ``FetcherConfig`` is built *from* it via ``to_fetcher_config()``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import InvalidSeedUrlError
from .fetcher import DEFAULT_USER_AGENT, FetcherConfig
from .utils import is_valid_url

logger = logging.getLogger(__name__)

ENV_PREFIX = "SITEMAP_CRAWLER_"
MIN_DEPTH, MAX_DEPTH = 1, 5


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_depth": 3,
    "max_pages": 100,
    "timeout_seconds": 15,         # per-page navigation timeout
    "max_retries": 2,              # whole-fetch retries on transient errors
    "retry_delay": 0.5,            # linear backoff base, seconds
    "fetch_delay": 0.05,           # courtesy pause between pages
    "progress_interval": 2.0,      # min seconds between progress callbacks
    "headless": True,
    "user_agent": DEFAULT_USER_AGENT,
    "respect_robots": True,
    "output_dir": "crawls",
    "log_level": "INFO",
}


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value.strip() if value and value.strip() else None


def _env_bool(name: str) -> Optional[bool]:
    value = _env(name)
    if value is None:
        return None
    return value.lower() in ("1", "true", "yes", "on")


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                 → all defaults
      - ``CrawlerRunConfig(max_pages=50)``     → override one value
      - ``CrawlerRunConfig.from_env()``        → ``SITEMAP_CRAWLER_*`` variables
      - ``CrawlerRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Crawl limits ----
    max_depth: int = _DEFAULTS["max_depth"]
    max_pages: int = _DEFAULTS["max_pages"]
    timeout_seconds: int = _DEFAULTS["timeout_seconds"]
    max_retries: int = _DEFAULTS["max_retries"]
    retry_delay: float = _DEFAULTS["retry_delay"]
    fetch_delay: float = _DEFAULTS["fetch_delay"]
    progress_interval: float = _DEFAULTS["progress_interval"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Politeness / scope ----
    respect_robots: bool = _DEFAULTS["respect_robots"]
    deny_patterns: List[str] = field(default_factory=list)

    # ---- Output ----
    output_dir: str = _DEFAULTS["output_dir"]
    log_level: str = _DEFAULTS["log_level"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls) -> "CrawlerRunConfig":
        """Defaults overridden by ``SITEMAP_CRAWLER_*`` environment variables."""
        cfg = cls()
        for name, cast in (
            ("max_depth", int), ("max_pages", int), ("timeout_seconds", int),
            ("max_retries", int), ("retry_delay", float), ("fetch_delay", float),
            ("progress_interval", float), ("user_agent", str),
            ("output_dir", str), ("log_level", str),
        ):
            raw = _env(name.upper())
            if raw is None:
                continue
            try:
                setattr(cfg, name, cast(raw))
            except ValueError:
                logger.warning(f"[CONFIG] Ignoring {ENV_PREFIX}{name.upper()}={raw!r}: not a {cast.__name__}")

        for name in ("headless", "respect_robots"):
            flag = _env_bool(name.upper())
            if flag is not None:
                setattr(cfg, name, flag)

        deny = _env("DENY_PATTERNS")
        if deny:
            cfg.deny_patterns = [p.strip() for p in deny.split(",") if p.strip()]
        return cfg

    @classmethod
    def from_cli_args(cls, args, base: Optional["CrawlerRunConfig"] = None) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Flags left at ``None`` keep the value from ``base`` (environment or
        defaults).
        """
        cfg = base or cls.from_env()

        def pick(attr: str, current):
            value = getattr(args, attr, None)
            return current if value is None else value

        cfg.max_depth = pick("depth", cfg.max_depth)
        cfg.max_pages = pick("pages", cfg.max_pages)
        cfg.timeout_seconds = pick("timeout", cfg.timeout_seconds)
        cfg.fetch_delay = pick("rate", cfg.fetch_delay)
        cfg.max_retries = pick("max_retries", cfg.max_retries)
        cfg.output_dir = pick("output_dir", cfg.output_dir)
        cfg.log_level = pick("log_level", cfg.log_level)
        deny = getattr(args, "deny_pattern", None)
        if deny:
            cfg.deny_patterns = list(cfg.deny_patterns) + list(deny)
        if getattr(args, "no_robots", False):
            cfg.respect_robots = False
        if getattr(args, "headed", False):
            cfg.headless = False
        return cfg

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------
    def validate(self, seed_url: Optional[str] = None) -> None:
        """Raise ``InvalidSeedUrlError`` / ``ValueError`` for unusable input."""
        if seed_url is not None and not is_valid_url(seed_url):
            raise InvalidSeedUrlError(f"Seed URL must be an absolute http(s) URL: {seed_url!r}")
        if not MIN_DEPTH <= self.max_depth <= MAX_DEPTH:
            raise ValueError(f"max_depth must be between {MIN_DEPTH} and {MAX_DEPTH}, got {self.max_depth}")
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be positive, got {self.max_pages}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")

    # -----------------------------------------------------------------------
    # Converters
    # -----------------------------------------------------------------------
    def to_fetcher_config(self) -> FetcherConfig:
        """Return a ``FetcherConfig`` populated from this run config."""
        return FetcherConfig(
            user_agent=self.user_agent,
            navigation_timeout_ms=int(self.timeout_seconds * 1000),
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 65)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 65)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info(f"  Timeout:          {self.timeout_seconds}s per page")
        logger.info(f"  Retries:          {self.max_retries} (backoff {self.retry_delay}s)")
        logger.info(f"  Rate Delay:       {self.fetch_delay}s between pages")
        logger.info(f"  Robots.txt:       {'respected' if self.respect_robots else 'ignored'}")
        logger.info(f"  Browser:          {'headless' if self.headless else 'headed'}")
        if self.deny_patterns:
            logger.info(f"  Deny Patterns:    {len(self.deny_patterns)} configured")
        logger.info(f"  Output Dir:       {self.output_dir}")
        logger.info("=" * 65)

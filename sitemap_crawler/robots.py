"""
Robots.txt Policy
Fetches robots.txt once per crawl and answers allow/deny per URL.

Courtesy is best-effort: a missing file, a non-200 answer, a timeout or a
parse problem all degrade to "no policy" (allow everything) rather than
aborting the crawl.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import requests

logger = logging.getLogger(__name__)

ROBOTS_TIMEOUT = 10.0


class RobotsPolicy:
    """
    Parsed robots.txt rules for one origin.

    Obtain one through ``RobotsPolicy.load()`` (or ``aload()`` from async
    code); a ``None`` return means "no policy found, allow all".
    """

    def __init__(self, robots_url: str, text: str):
        self.robots_url = robots_url
        self._parser = RobotFileParser()
        self._parser.set_url(robots_url)
        self._parser.parse(text.splitlines())

    @classmethod
    def load(
        cls,
        base_origin: str,
        *,
        user_agent: str = "*",
        timeout: float = ROBOTS_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> Optional["RobotsPolicy"]:
        """
        Fetch and parse ``{origin}/robots.txt``.

        Args:
            base_origin: Origin of the crawl (``https://example.com``)
            user_agent: User-Agent header sent with the request
            timeout: Request timeout in seconds (capped at 10s)
            session: Optional ``requests.Session`` to reuse

        Returns:
            A ``RobotsPolicy`` or None when there is nothing to honour
        """
        parsed = urlsplit(base_origin)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        http = session or requests
        try:
            logger.info(f"[ROBOTS] Checking {robots_url}")
            response = http.get(
                robots_url,
                headers={"User-Agent": user_agent},
                timeout=min(timeout, ROBOTS_TIMEOUT),
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.warning(f"[ROBOTS] Could not fetch {robots_url} ({e}) - allowing all")
            return None

        if response.status_code != 200:
            logger.info(
                f"[ROBOTS] No robots.txt at {robots_url} "
                f"(status: {response.status_code}) - allowing all"
            )
            return None

        try:
            policy = cls(robots_url, response.text)
        except Exception as e:
            logger.warning(f"[ROBOTS] Could not parse {robots_url} ({e}) - allowing all")
            return None
        logger.info("[ROBOTS] robots.txt found and parsed")
        return policy

    @classmethod
    async def aload(cls, base_origin: str, **kwargs) -> Optional["RobotsPolicy"]:
        """``load()`` in a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(cls.load, base_origin, **kwargs)

    def is_allowed(self, url: str, user_agent: str = "*") -> bool:
        """Check if the given URL may be fetched by ``user_agent``."""
        allowed = self._parser.can_fetch(user_agent, url)
        if not allowed:
            logger.debug(f"[ROBOTS] Blocked: {url}")
        return allowed

    def crawl_delay(self, user_agent: str = "*") -> Optional[float]:
        """Crawl-delay for ``user_agent`` in seconds, if the file sets one."""
        delay = self._parser.crawl_delay(user_agent)
        return float(delay) if delay is not None else None

    def sitemaps(self) -> List[str]:
        return list(self._parser.site_maps() or [])

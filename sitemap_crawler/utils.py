"""
Utility Functions
URL normalization and small URL helpers shared across the crawler.
"""

import logging
import re
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {'http': 80, 'https': 443}


class URLNormalizer:
    """
    Canonicalizes URLs so they can be used as visited-set keys.

    - Resolves relative and protocol-relative URLs against a base
    - Drops simple anchors (#section) but keeps hash routes (#/products),
      which single-page apps use for navigable state
    - Keeps query strings (pagination/filter state)
    - Lower-cases scheme and host, drops default ports
    - Collapses repeated slashes, strips the trailing slash except at the root
    """

    # Schemes that never lead to a crawlable page
    SKIP_SCHEMES = ('javascript:', 'mailto:', 'tel:', 'data:', 'file:')

    def __init__(self, keep_hash_routes: bool = True, collapse_slashes: bool = True):
        """
        Args:
            keep_hash_routes: Preserve fragments that start with ``/``
            collapse_slashes: Replace ``//`` runs in the path with ``/``
        """
        self.keep_hash_routes = keep_hash_routes
        self.collapse_slashes = collapse_slashes

    def normalize(self, url: str, base_url: str = None) -> Optional[str]:
        """
        Normalize a URL for consistent comparison.

        Args:
            url: The URL to normalize
            base_url: Optional base URL for resolving relative URLs

        Returns:
            Normalized URL string or None if the URL cannot be crawled
        """
        if not url:
            return None
        url = url.strip()
        if not url or url.lower().startswith(self.SKIP_SCHEMES):
            return None

        if base_url:
            if url.startswith('#'):
                # Fragment-only link: same document, possibly a new route
                url = urldefrag(base_url).url + url
            elif url.startswith('//'):
                url = f"{urlsplit(base_url).scheme}:{url}"
            url = urljoin(base_url, url)

        try:
            parsed = urlsplit(url)
            port = parsed.port
            host = parsed.hostname
        except ValueError:
            return None

        scheme = parsed.scheme.lower()
        if scheme not in _DEFAULT_PORTS or not host:
            return None

        netloc = f"[{host}]" if ':' in host else host
        if port is not None and port != _DEFAULT_PORTS[scheme]:
            netloc = f"{netloc}:{port}"

        path = parsed.path or '/'
        if self.collapse_slashes:
            path = re.sub(r'/+', '/', path)
        if path != '/' and path.endswith('/'):
            path = path[:-1]

        fragment = ''
        if self.keep_hash_routes and parsed.fragment.startswith('/'):
            fragment = parsed.fragment

        return urlunsplit((scheme, netloc, path, parsed.query, fragment))


_default_normalizer = URLNormalizer()


def normalize_url(url: str, base_url: str = None) -> Optional[str]:
    """Normalize with the default ``URLNormalizer`` settings."""
    return _default_normalizer.normalize(url, base_url)


def is_hash_route(url: str) -> bool:
    """True if the URL carries a client-side route fragment (``#/...``)."""
    return '#/' in url and urlsplit(url).fragment.startswith('/')


def strip_fragment(url: str) -> str:
    return urldefrag(url).url


def origin_of(url: str) -> str:
    """Return ``scheme://netloc`` for a URL."""
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute http(s) URL."""
    try:
        parsed = urlsplit(url)
        parsed.port
        return all([parsed.scheme in ('http', 'https'), parsed.hostname])
    except (ValueError, AttributeError):
        return False

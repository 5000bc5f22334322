"""
Tree Builder
============
Turns the scheduler's PageRecords into the output sitemap tree and the
sitemaps.org XML document.

A site whose URLs or links carry hash routes (``#/...``) is treated as a
single-page application and gets a flat tree: parent/child links found by
a client-side router say little about the site's structure.
"""

import logging
from typing import Dict, Iterable, List, Optional
from xml.sax.saxutils import escape

from .models import PageRecord, PageStatus, SitemapNode
from .utils import is_hash_route

logger = logging.getLogger(__name__)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def is_spa(pages: Iterable[PageRecord]) -> bool:
    """True if any visited URL or discovered link is a hash route."""
    for record in pages:
        if is_hash_route(record.url):
            return True
        if any(is_hash_route(link) for link in record.outbound_links):
            return True
    return False


def _root_record(pages: List[PageRecord], root_url: str) -> Optional[PageRecord]:
    for record in pages:
        if record.url == root_url:
            return record
    return pages[0] if pages else None


def _node(record: PageRecord, depth: Optional[int] = None) -> SitemapNode:
    return SitemapNode(
        id=record.id,
        url=record.url,
        title=record.title,
        depth=record.depth if depth is None else depth,
        status=record.status,
    )


def build_flat_sitemap(pages: List[PageRecord], root_url: str) -> SitemapNode:
    """Root plus every other record as a depth-1 child, sorted by URL."""
    root = _root_record(pages, root_url)
    if root is None:
        return SitemapNode(id="root", url=root_url, title="Root", depth=0)

    node = _node(root, depth=0)
    others = sorted((r for r in pages if r is not root), key=lambda r: r.url)
    if others:
        node.children = [_node(r, depth=1) for r in others]
    return node


def build_tree(pages: List[PageRecord], root_url: str) -> SitemapNode:
    """Hierarchical tree following ``parent_id``; children in discovery order."""
    root = _root_record(pages, root_url)
    if root is None:
        return SitemapNode(id="root", url=root_url, title="Root", depth=0)

    children_of: Dict[str, List[PageRecord]] = {}
    for record in pages:
        if record is root or record.parent_id is None:
            continue
        children_of.setdefault(record.parent_id, []).append(record)

    def attach(record: PageRecord, seen: set) -> SitemapNode:
        node = _node(record)
        seen.add(record.id)
        kids = [attach(c, seen) for c in children_of.get(record.id, []) if c.id not in seen]
        if kids:
            node.children = kids
        return node

    tree = attach(root, set())

    # Records whose parent is not reachable from the root hang off the root
    attached = {n.id for n in tree.iter_nodes()}
    orphans = [r for r in pages if r.id not in attached]
    if orphans:
        logger.debug(f"[TREE] Attaching {len(orphans)} orphan record(s) to root")
        seen = set(attached)
        extra = [attach(r, seen) for r in orphans if r.id not in seen]
        tree.children = (tree.children or []) + extra
    return tree


def build_sitemap(pages: Iterable[PageRecord], root_url: str) -> SitemapNode:
    """Pick flat or hierarchical layout once and build it."""
    pages = list(pages)
    if is_spa(pages):
        logger.info(f"[TREE] Hash routes detected, building flat sitemap ({len(pages)} pages)")
        return build_flat_sitemap(pages, root_url)
    logger.info(f"[TREE] Building hierarchical sitemap ({len(pages)} pages)")
    return build_tree(pages, root_url)


def count_nodes(node: SitemapNode) -> int:
    return sum(1 for _ in node.iter_nodes())


def priority_for(depth: int) -> str:
    """``max(0.1, 1 - 0.2 * depth)`` to one decimal."""
    return f"{max(0.1, 1.0 - depth * 0.2):.1f}"


def _url_entry(url: str, depth: int) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(url, _XML_ENTITIES)}</loc>\n"
        f"    <priority>{priority_for(depth)}</priority>\n"
        "  </url>"
    )


def to_xml(pages: Iterable[PageRecord], root_url: str) -> str:
    """
    sitemaps.org ``<urlset>`` with one entry per ``ok`` record.

    Never returns an empty document: without ok records the root URL is
    listed on its own.
    """
    entries = [_url_entry(r.url, r.depth) for r in pages if r.status is PageStatus.OK]
    if not entries:
        entries = [_url_entry(root_url, 0)]
    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<urlset xmlns="{SITEMAP_NS}">',
        *entries,
        "</urlset>",
    ]) + "\n"

"""
Data Models
===========
Plain dataclasses shared by the fetcher, the frontier scheduler, the tree
builder and the orchestrator.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class PageStatus(str, enum.Enum):
    OK = "ok"
    BROKEN = "broken"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class PageInfo:
    """What the fetcher learned about one URL."""
    final_url: str
    title: str
    status: PageStatus
    links: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is PageStatus.OK


@dataclass
class PageRecord:
    """One visited URL. ``url`` is the canonical key within a crawl."""
    id: str
    url: str
    title: str = "Untitled"
    status: PageStatus = PageStatus.OK
    depth: int = 0
    outbound_links: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    final_url: str = ""

    def to_dict(self) -> dict:
        return {
            'id': self.id, 'url': self.url, 'title': self.title,
            'status': self.status.value, 'depth': self.depth,
            'outbound_links': list(self.outbound_links),
            'parent_id': self.parent_id, 'final_url': self.final_url,
        }


@dataclass(frozen=True)
class FrontierEntry:
    url: str
    depth: int
    parent_id: Optional[str] = None


@dataclass
class SitemapNode:
    """Output tree node. ``children`` is None for leaves."""
    id: str
    url: str
    title: str
    depth: int
    status: PageStatus = PageStatus.OK
    children: Optional[List["SitemapNode"]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'url': self.url,
            'title': self.title,
            'depth': self.depth,
            'status': self.status.value,
        }
        if self.children is not None:
            data['children'] = [c.to_dict() for c in self.children]
        return data

    def iter_nodes(self):
        """Depth-first walk over this node and all descendants."""
        yield self
        for child in self.children or []:
            yield from child.iter_nodes()


@dataclass(frozen=True)
class CrawlResult:
    """Terminal output of one crawl invocation."""
    sitemap_tree: SitemapNode
    pages_found: int
    broken_links: int
    duplicate_pages: int
    xml_content: str
    stop_reason: str = "completed"

    def to_dict(self) -> dict:
        return {
            'sitemap': self.sitemap_tree.to_dict(),
            'pagesFound': self.pages_found,
            'brokenLinks': self.broken_links,
            'duplicatePages': self.duplicate_pages,
            'xmlContent': self.xml_content,
        }


@dataclass(frozen=True)
class ProgressUpdate:
    """Payload handed to the progress callback."""
    pages_found: int
    queue_size: int
    progress: int            # 0-100
    current_url: Optional[str] = None


class CrawlStatus(str, enum.Enum):
    PENDING = "pending"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (CrawlStatus.COMPLETED, CrawlStatus.FAILED)


@dataclass
class CrawlProgress:
    """Live progress of a crawl job, as kept by ``ProgressStore``."""
    crawl_id: str
    status: CrawlStatus = CrawlStatus.PENDING
    pages_found: int = 0
    queue_size: int = 0
    progress: int = 0
    current_url: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'crawlId': self.crawl_id,
            'status': self.status.value,
            'pagesFound': self.pages_found,
            'currentUrl': self.current_url,
            'queueSize': self.queue_size,
            'progress': self.progress,
            'errorMessage': self.error_message,
        }

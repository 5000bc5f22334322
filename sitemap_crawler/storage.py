"""
Crawl persistence sinks.

The crawl engine performs no I/O of its own; a ``CrawlStore`` receives the
crawl status record and the finished sitemap artifact from ``CrawlJob``.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Protocol

from .models import CrawlResult

logger = logging.getLogger(__name__)


class CrawlStore(Protocol):
    """Where crawl status records and sitemap artifacts go."""

    def update_crawl(self, crawl_id: str, **fields: Any) -> None:
        ...

    def save_sitemap(self, crawl_id: str, result: CrawlResult) -> None:
        ...


class JsonFileCrawlStore:
    """
    Writes one crawl's files into ``directory``::

        <id>.crawl.json     status record (merged on every update)
        <id>.sitemap.json   CrawlResult.to_dict() without the XML
        <id>.xml            the XML sitemap
    """

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def crawl_path(self, crawl_id: str) -> Path:
        return self.directory / f"{crawl_id}.crawl.json"

    def sitemap_path(self, crawl_id: str) -> Path:
        return self.directory / f"{crawl_id}.sitemap.json"

    def xml_path(self, crawl_id: str) -> Path:
        return self.directory / f"{crawl_id}.xml"

    def load_crawl(self, crawl_id: str) -> Dict[str, Any]:
        path = self.crawl_path(crawl_id)
        if not path.exists():
            return {}
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def update_crawl(self, crawl_id: str, **fields: Any) -> None:
        record = self.load_crawl(crawl_id)
        record.setdefault('id', crawl_id)
        record.update({k: _jsonable(v) for k, v in fields.items()})
        record['updatedAt'] = datetime.now(timezone.utc).isoformat()
        self._write_json(self.crawl_path(crawl_id), record)

    def save_sitemap(self, crawl_id: str, result: CrawlResult) -> None:
        data = result.to_dict()
        xml = data.pop('xmlContent')
        data['crawlId'] = crawl_id
        self._write_json(self.sitemap_path(crawl_id), data)
        with open(self.xml_path(crawl_id), 'w', encoding='utf-8') as f:
            f.write(xml)
        logger.info(f"[STORE] Sitemap saved: {self.sitemap_path(crawl_id)}")

    @staticmethod
    def _write_json(path: Path, data: dict) -> None:
        tmp = path.with_suffix(path.suffix + '.tmp')
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp.replace(path)


def _jsonable(value: Any) -> Any:
    return getattr(value, 'value', value)

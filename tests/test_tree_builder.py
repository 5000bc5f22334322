"""
Tests for tree_builder.py: sitemap tree layout and XML output.
"""

import re
from xml.sax.saxutils import unescape

from sitemap_crawler.models import PageRecord, PageStatus
from sitemap_crawler.tree_builder import (
    build_flat_sitemap,
    build_sitemap,
    build_tree,
    count_nodes,
    is_spa,
    priority_for,
    to_xml,
)

ROOT = "https://example.com/"


def rec(i, url, depth=0, parent=None, status=PageStatus.OK, links=()):
    return PageRecord(
        id=f"node-{i}", url=url, title=f"T{i}", status=status,
        depth=depth, parent_id=parent, outbound_links=list(links),
    )


def site():
    return [
        rec(0, ROOT, links=["https://example.com/b", "https://example.com/a"]),
        rec(1, "https://example.com/b", 1, "node-0", links=["https://example.com/b/x"]),
        rec(2, "https://example.com/a", 1, "node-0"),
        rec(3, "https://example.com/b/x", 2, "node-1", status=PageStatus.BROKEN),
    ]


class TestSpaDetection:

    def test_plain_site(self):
        assert not is_spa(site())

    def test_hash_route_url(self):
        assert is_spa([rec(0, "https://example.com/#/home")])

    def test_hash_route_link(self):
        assert is_spa([rec(0, ROOT, links=["https://example.com/#/products"])])

    def test_plain_anchor_is_not_a_route(self):
        assert not is_spa([rec(0, ROOT, links=["https://example.com/page#section"])])


class TestHierarchicalTree:

    def test_children_follow_parent_ids_in_discovery_order(self):
        tree = build_tree(site(), ROOT)

        assert tree.url == ROOT
        assert [c.url for c in tree.children] == ["https://example.com/b", "https://example.com/a"]
        b = tree.children[0]
        assert [c.url for c in b.children] == ["https://example.com/b/x"]
        assert b.children[0].status is PageStatus.BROKEN

    def test_leaves_omit_children(self):
        tree = build_tree(site(), ROOT)
        leaf = tree.children[1]
        assert leaf.children is None
        assert "children" not in leaf.to_dict()

    def test_single_node_tree(self):
        tree = build_tree([rec(0, ROOT, status=PageStatus.BROKEN)], ROOT)
        assert tree.children is None
        assert count_nodes(tree) == 1

    def test_orphans_attached_to_root(self):
        pages = [rec(0, ROOT), rec(1, "https://example.com/o", 1, "node-99")]
        tree = build_tree(pages, ROOT)
        assert count_nodes(tree) == 2

    def test_root_falls_back_to_first_record(self):
        pages = [rec(0, "https://example.com/home"), rec(1, "https://example.com/a", 1, "node-0")]
        tree = build_tree(pages, ROOT)
        assert tree.url == "https://example.com/home"

    def test_empty_input_gives_synthetic_root(self):
        tree = build_tree([], ROOT)
        assert tree.title == "Root"
        assert tree.url == ROOT


class TestFlatSitemap:

    def test_all_pages_direct_children_sorted(self):
        pages = [
            rec(0, ROOT, links=["https://example.com/#/z"]),
            rec(1, "https://example.com/#/z", 1, "node-0"),
            rec(2, "https://example.com/#/a", 2, "node-1"),
        ]
        tree = build_flat_sitemap(pages, ROOT)

        assert [c.url for c in tree.children] == ["https://example.com/#/a", "https://example.com/#/z"]
        assert all(c.depth == 1 and c.children is None for c in tree.children)

    def test_build_sitemap_picks_flat_for_spa(self):
        pages = [
            rec(0, ROOT, links=["https://example.com/#/products"]),
            rec(1, "https://example.com/#/products", 1, "node-0"),
        ]
        tree = build_sitemap(pages, ROOT)
        assert len(tree.children) == 1
        assert tree.children[0].url == "https://example.com/#/products"

    def test_build_sitemap_picks_tree_otherwise(self):
        tree = build_sitemap(site(), ROOT)
        assert tree.children[0].children is not None

    def test_count_matches_pages_in_both_layouts(self):
        pages = site()
        assert count_nodes(build_tree(pages, ROOT)) == len(pages)
        assert count_nodes(build_flat_sitemap(pages, ROOT)) == len(pages)


class TestXml:

    def test_one_entry_per_ok_record(self):
        xml = to_xml(site(), ROOT)
        locs = re.findall(r"<loc>(.*?)</loc>", xml)
        assert locs == [ROOT, "https://example.com/b", "https://example.com/a"]
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"' in xml

    def test_priorities(self):
        assert priority_for(0) == "1.0"
        assert priority_for(1) == "0.8"
        assert priority_for(2) == "0.6"
        assert priority_for(4) == "0.2"
        assert priority_for(5) == "0.1"
        assert priority_for(9) == "0.1"

    def test_priority_in_document(self):
        xml = to_xml(site(), ROOT)
        assert re.findall(r"<priority>(.*?)</priority>", xml) == ["1.0", "0.8", "0.8"]

    def test_special_characters_escaped(self):
        url = "https://example.com/search?q=a&b=<c>&d=\"e\"&f='g'"
        xml = to_xml([rec(0, url)], url)
        loc = re.search(r"<loc>(.*?)</loc>", xml).group(1)

        assert "&amp;" in loc and "&lt;" in loc and "&gt;" in loc
        assert "&quot;" in loc and "&apos;" in loc
        assert unescape(loc, {"&quot;": '"', "&apos;": "'"}) == url

    def test_no_ok_pages_falls_back_to_root(self):
        xml = to_xml([rec(0, ROOT, status=PageStatus.BROKEN)], ROOT)
        assert re.findall(r"<loc>(.*?)</loc>", xml) == [ROOT]

    def test_duplicates_not_listed(self):
        pages = [rec(0, ROOT), rec(1, "https://example.com/d", 1, "node-0", status=PageStatus.DUPLICATE)]
        xml = to_xml(pages, ROOT)
        assert "https://example.com/d" not in xml

"""
Tests for scope_filter.py.

Covers:
  1. Same host + effective port is in scope, regardless of scheme
  2. Default ports are equivalent to no port
  3. Unparsable or non-http(s) input fails closed
  4. ScopeFilter deny-patterns and description
"""

import pytest

from sitemap_crawler.scope_filter import ScopeFilter, is_in_scope

BASE = "https://example.com"


# ====================================================================
# 1. Origin matching
# ====================================================================

class TestOriginMatching:
    """Host and port decide scope; path and scheme do not."""

    def test_same_origin_paths(self):
        assert is_in_scope("https://example.com/a/b?c=1", BASE)
        assert is_in_scope("https://example.com/#/route", BASE)

    def test_cross_scheme_allowed(self):
        assert is_in_scope("http://example.com/page", BASE)

    def test_host_case_insensitive(self):
        assert is_in_scope("https://EXAMPLE.com/page", BASE)

    def test_other_host_rejected(self):
        assert not is_in_scope("https://other.com/", BASE)

    def test_subdomain_rejected(self):
        assert not is_in_scope("https://www.example.com/", BASE)
        assert not is_in_scope("https://docs.example.com/", BASE)

    def test_lookalike_host_rejected(self):
        assert not is_in_scope("https://example.com.evil.org/", BASE)


# ====================================================================
# 2. Port handling
# ====================================================================

class TestPorts:

    def test_explicit_default_port_equivalent(self):
        assert is_in_scope("https://example.com:443/a", BASE)
        assert is_in_scope("http://example.com:80/a", BASE)

    def test_non_default_port_rejected(self):
        assert not is_in_scope("https://example.com:8443/a", BASE)

    def test_matching_non_default_port(self):
        assert is_in_scope("http://localhost:3000/a", "http://localhost:3000")
        assert not is_in_scope("http://localhost:3001/a", "http://localhost:3000")

    def test_bare_host_port_origin(self):
        assert is_in_scope("http://localhost:3000/a", "localhost:3000")


# ====================================================================
# 3. Fail closed
# ====================================================================

class TestFailClosed:

    @pytest.mark.parametrize("url", [
        "", "not a url", "ftp://example.com/", "mailto:a@example.com",
        "https://example.com:99999/", "https://",
    ])
    def test_unparsable_candidate(self, url):
        assert not is_in_scope(url, BASE)

    def test_unparsable_base(self):
        assert not is_in_scope("https://example.com/", "")
        assert not is_in_scope("https://example.com/", "https://:abc")


# ====================================================================
# 4. ScopeFilter
# ====================================================================

class TestScopeFilterBehavior:

    def test_accepts_same_origin(self):
        sf = ScopeFilter(base_origin=BASE)
        assert sf.accept("https://example.com/docs")
        assert not sf.accept("https://other.com/docs")

    def test_deny_pattern_blocks(self):
        sf = ScopeFilter(base_origin=BASE, deny_patterns=[r"/logout"])
        assert not sf.accept("https://example.com/logout")
        assert sf.accept("https://example.com/login")

    def test_deny_pattern_regex(self):
        sf = ScopeFilter(base_origin=BASE, deny_patterns=[r"\.(pdf|zip)$"])
        assert sf.is_denied("https://example.com/file.PDF")
        assert not sf.accept("https://example.com/archive.zip")
        assert sf.accept("https://example.com/page")

    def test_invalid_deny_pattern_skipped(self):
        sf = ScopeFilter(base_origin=BASE, deny_patterns=["[unclosed", r"/admin"])
        assert not sf.accept("https://example.com/admin")
        assert sf.accept("https://example.com/ok")

    def test_scope_description(self):
        assert ScopeFilter(base_origin=BASE).scope_description == "Origin: example.com (http/https)"
        assert (ScopeFilter(base_origin="http://localhost:3000").scope_description
                == "Origin: localhost:3000 (http/https)")

    def test_empty_base_rejects_all(self):
        sf = ScopeFilter(base_origin="")
        assert not sf.accept("https://example.com/")
        assert sf.scope_description == "(unknown)"

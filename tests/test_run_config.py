"""
Tests for run_config.py: defaults, environment overrides, CLI merging
and validation.
"""

import argparse

import pytest

from sitemap_crawler.errors import InvalidSeedUrlError
from sitemap_crawler.fetcher import DEFAULT_USER_AGENT
from sitemap_crawler.run_config import ENV_PREFIX, CrawlerRunConfig


def _namespace(**overrides):
    values = dict(
        depth=None, pages=None, timeout=None, rate=None, max_retries=None,
        output_dir=None, log_level=None, deny_pattern=None,
        no_robots=False, headed=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    return monkeypatch


class TestDefaults:

    def test_values(self):
        cfg = CrawlerRunConfig()
        assert cfg.max_depth == 3
        assert cfg.max_pages == 100
        assert cfg.timeout_seconds == 15
        assert cfg.max_retries == 2
        assert cfg.fetch_delay == 0.05
        assert cfg.headless is True
        assert cfg.respect_robots is True
        assert cfg.user_agent == DEFAULT_USER_AGENT
        assert cfg.deny_patterns == []

    def test_deny_patterns_not_shared(self):
        a, b = CrawlerRunConfig(), CrawlerRunConfig()
        a.deny_patterns.append("/x")
        assert b.deny_patterns == []


class TestValidate:

    def test_defaults_are_valid(self):
        CrawlerRunConfig().validate("https://example.com")

    @pytest.mark.parametrize("seed", ["", "example.com", "ftp://example.com", "https://"])
    def test_bad_seed(self, seed):
        with pytest.raises(InvalidSeedUrlError):
            CrawlerRunConfig().validate(seed)

    @pytest.mark.parametrize("field,value", [
        ("max_depth", 0), ("max_depth", 6), ("max_pages", 0),
        ("timeout_seconds", 0), ("max_retries", -1),
    ])
    def test_out_of_range(self, field, value):
        cfg = CrawlerRunConfig(**{field: value})
        with pytest.raises(ValueError):
            cfg.validate()

    @pytest.mark.parametrize("depth", [1, 5])
    def test_depth_bounds_inclusive(self, depth):
        CrawlerRunConfig(max_depth=depth).validate()


class TestFromEnv:

    def test_no_variables_gives_defaults(self, clean_env):
        assert CrawlerRunConfig.from_env() == CrawlerRunConfig()

    def test_typed_overrides(self, clean_env):
        clean_env.setenv(f"{ENV_PREFIX}MAX_DEPTH", "4")
        clean_env.setenv(f"{ENV_PREFIX}FETCH_DELAY", "0.25")
        clean_env.setenv(f"{ENV_PREFIX}HEADLESS", "false")
        clean_env.setenv(f"{ENV_PREFIX}RESPECT_ROBOTS", "0")
        clean_env.setenv(f"{ENV_PREFIX}DENY_PATTERNS", "/logout, \\.pdf$ ,")

        cfg = CrawlerRunConfig.from_env()
        assert cfg.max_depth == 4
        assert cfg.fetch_delay == 0.25
        assert cfg.headless is False
        assert cfg.respect_robots is False
        assert cfg.deny_patterns == ["/logout", "\\.pdf$"]

    def test_invalid_value_ignored(self, clean_env):
        clean_env.setenv(f"{ENV_PREFIX}MAX_PAGES", "lots")
        assert CrawlerRunConfig.from_env().max_pages == 100

    def test_blank_value_ignored(self, clean_env):
        clean_env.setenv(f"{ENV_PREFIX}OUTPUT_DIR", "   ")
        assert CrawlerRunConfig.from_env().output_dir == "crawls"


class TestFromCliArgs:

    def test_none_keeps_base(self):
        base = CrawlerRunConfig(max_depth=4, max_pages=20)
        cfg = CrawlerRunConfig.from_cli_args(_namespace(), base=base)
        assert cfg.max_depth == 4
        assert cfg.max_pages == 20

    def test_flags_override(self):
        cfg = CrawlerRunConfig.from_cli_args(
            _namespace(depth=2, pages=10, timeout=30, rate=1.5, max_retries=0,
                       output_dir="out", log_level="DEBUG"),
            base=CrawlerRunConfig(),
        )
        assert (cfg.max_depth, cfg.max_pages, cfg.timeout_seconds) == (2, 10, 30)
        assert cfg.fetch_delay == 1.5
        assert cfg.max_retries == 0
        assert cfg.output_dir == "out"
        assert cfg.log_level == "DEBUG"

    def test_boolean_switches(self):
        cfg = CrawlerRunConfig.from_cli_args(
            _namespace(no_robots=True, headed=True), base=CrawlerRunConfig(),
        )
        assert cfg.respect_robots is False
        assert cfg.headless is False

    def test_deny_patterns_appended(self):
        base = CrawlerRunConfig(deny_patterns=["/a"])
        cfg = CrawlerRunConfig.from_cli_args(_namespace(deny_pattern=["/b"]), base=base)
        assert cfg.deny_patterns == ["/a", "/b"]

    def test_reads_environment_without_base(self, clean_env):
        clean_env.setenv(f"{ENV_PREFIX}MAX_PAGES", "7")
        cfg = CrawlerRunConfig.from_cli_args(_namespace(depth=2))
        assert cfg.max_pages == 7
        assert cfg.max_depth == 2


class TestFetcherConfig:

    def test_conversion(self):
        fc = CrawlerRunConfig(timeout_seconds=20, max_retries=1, retry_delay=0.2,
                              user_agent="UA/1").to_fetcher_config()
        assert fc.navigation_timeout_ms == 20000
        assert fc.max_retries == 1
        assert fc.retry_delay == 0.2
        assert fc.user_agent == "UA/1"

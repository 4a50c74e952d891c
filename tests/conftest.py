"""Shared test fixtures and configuration."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from rdnt_search.config import Settings
from rdnt_search.search.index import SearchIndex
from rdnt_search.utils.content_fetcher import FetchResult


# Keep a developer's .env or shell exports from leaking into tests
SEARCH_ENV_VARS = (
    "INDEX_PATH",
    "WEBSITES_ROOT",
    "CRAWLER_USER_AGENT",
    "CRAWL_MAX_DEPTH",
    "CRAWL_MAX_PAGES",
    "CRAWL_DELAY_SECONDS",
    "RESPECT_ROBOTS_TXT",
    "SAME_HOST_ONLY",
    "SNIPPET_LENGTH",
    "SEARCH_DEFAULT_LIMIT",
    "AUTOSAVE_ENABLED",
    "AUTOSAVE_INTERVAL_SECONDS",
    "LOG_LEVEL",
    "LOG_JSON",
)

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Drop search-related environment variables and run each test from a scratch directory."""
    for key in SEARCH_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(key.lower(), raising=False)
    monkeypatch.chdir(tmp_path)


class FixedClock:
    """Deterministic wall clock; call ``advance`` to move it forward."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeContentFetcher:
    """In-memory ``ContentFetcher`` keyed by ``host/path``."""

    def __init__(self, pages: dict[str, str | bytes] | None = None, sites: list[str] | None = None):
        self.pages = {
            path: content.encode("utf-8") if isinstance(content, str) else content
            for path, content in (pages or {}).items()
        }
        self.sites = sites
        self.requests: list[str] = []

    async def fetch(self, path: str) -> FetchResult:
        self.requests.append(path)
        content = self.pages.get(path)
        if content is None:
            return FetchResult.failure(f"Not found: {path}")
        return FetchResult(content=content)

    async def list_sites(self) -> list[str]:
        if self.sites is not None:
            return list(self.sites)
        return sorted({path.split("/", 1)[0] for path in self.pages})


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def index(clock):
    return SearchIndex(clock=clock)


@pytest.fixture
def make_fetcher():
    """Factory for ``FakeContentFetcher`` instances."""
    return FakeContentFetcher


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated under ``tmp_path`` with pacing disabled."""
    websites = tmp_path / "websites"
    websites.mkdir()
    return Settings(
        _env_file=None,
        index_path=tmp_path / "data" / "search_index.json",
        websites_root=websites,
        crawl_delay_seconds=0.0,
        autosave_interval_seconds=300.0,
    )

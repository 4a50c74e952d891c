"""Breadth-leaning site crawler feeding the search index.

One FIFO frontier of ``(url, depth)`` pairs is drained until it is empty or
the page ceiling is reached. Pages are fetched through a ``ContentFetcher``,
classified by extension, titled, indexed, and (below ``max_depth``) mined for
``<link url>`` and ``<a href>`` targets. The crawler sleeps between pages;
this is cooperative pacing, not a rate limiter.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import posixpath
import re
import time
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup

from rdnt_search.observability.metrics import CRAWL_PAGES
from rdnt_search.observability.tracing import create_span
from rdnt_search.search.models import DEFAULT_TITLE, DocumentType
from rdnt_search.utils.content_fetcher import URL_PATTERN, url_to_path
from rdnt_search.utils.robots import ROBOTS_PATH, RobotsRules, parse_robots_txt


if TYPE_CHECKING:
    from rdnt_search.config import Settings
    from rdnt_search.search.index import SearchIndex
    from rdnt_search.utils.content_fetcher import ContentFetcher


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "RedNet-Explorer/1.0 Crawler"
DEFAULT_SCHEME = "rdnt"

EXTENSION_TYPES: dict[str, DocumentType] = {
    ".rwml": DocumentType.RWML,
    ".lua": DocumentType.SCRIPT,
    ".txt": DocumentType.PLAIN_TEXT,
    ".md": DocumentType.PLAIN_TEXT,
    ".html": DocumentType.HTML,
}

ABSOLUTE_URL_PATTERN = re.compile(r"^[a-zA-Z][\w+.-]*://")
SCRIPT_TITLE_PATTERN = re.compile(r"\s*--+[ \t]*([^\n]*)")
HEADING_PATTERN = re.compile(r"^h[1-6]$")


@dataclass
class CrawlConfig:
    """Configuration for crawler behavior."""

    max_depth: int = 3
    max_pages: int = 100
    delay_seconds: float = 0.1
    user_agent: str = DEFAULT_USER_AGENT
    respect_robots_txt: bool = True
    same_host_only: bool = True  # Don't wander off-site

    @classmethod
    def from_settings(cls, settings: Settings) -> CrawlConfig:
        return cls(
            max_depth=settings.crawl_max_depth,
            max_pages=settings.crawl_max_pages,
            delay_seconds=settings.crawl_delay_seconds,
            user_agent=settings.crawler_user_agent,
            respect_robots_txt=settings.respect_robots_txt,
            same_host_only=settings.same_host_only,
        )


@dataclass
class CrawlStats:
    """Outcome of one ``crawl_site`` call."""

    seed_url: str
    pages_indexed: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    total_visited: int = 0
    queue_remaining: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    elapsed: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed_url": self.seed_url,
            "pages_indexed": self.pages_indexed,
            "pages_failed": self.pages_failed,
            "pages_skipped": self.pages_skipped,
            "total_visited": self.total_visited,
            "queue_remaining": self.queue_remaining,
            "errors": dict(self.errors),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "elapsed": self.elapsed,
        }


@dataclass
class CrawlState:
    """Mutable state of a single crawl run."""

    seed_url: str
    host: str
    visited: set[str] = field(default_factory=set)
    frontier: deque[tuple[str, int]] = field(default_factory=deque)
    stats: CrawlStats = field(init=False)
    robots: RobotsRules = field(default_factory=RobotsRules.allow_all)
    delay_seconds: float = 0.0
    started: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        self.stats = CrawlStats(seed_url=self.seed_url)


def split_url(url: str) -> tuple[str, str, str] | None:
    """Return ``(scheme, host, path)`` or None when ``url`` is not ``scheme://host...``."""
    match = URL_PATTERN.match(url)
    if not match:
        return None
    return match.group("scheme"), match.group("host"), match.group("path") or "/"


def url_extension(url: str) -> str:
    """Lowercased extension of the last path segment, ``""`` when there is none."""
    parts = split_url(url)
    path = parts[2] if parts else url.split("#", 1)[0].split("?", 1)[0]
    segment = path.rsplit("/", 1)[-1]
    if "." not in segment:
        return ""
    return "." + segment.rsplit(".", 1)[-1].lower()


def classify_document_type(url: str) -> DocumentType | None:
    """Map a URL to a document type by extension; None for unrecognized extensions."""
    extension = url_extension(url)
    if not extension:
        return DocumentType.PLAIN_TEXT
    return EXTENSION_TYPES.get(extension)


def is_crawlable(url: str) -> bool:
    return classify_document_type(url) is not None


def extract_title(content: str, doc_type: DocumentType) -> str:
    """Pick a display title: ``<title>``, else the first heading, else a script's leading comment."""
    soup = BeautifulSoup(content, "html.parser")
    for tag in (soup.find("title"), soup.find(HEADING_PATTERN)):
        if tag is not None:
            text = tag.get_text(" ", strip=True)
            if text:
                return text

    match doc_type:
        case DocumentType.SCRIPT:
            comment = SCRIPT_TITLE_PATTERN.match(content)
            if comment and comment.group(1).strip():
                return comment.group(1).strip()
        case DocumentType.RWML | DocumentType.HTML | DocumentType.PLAIN_TEXT:
            pass
    return DEFAULT_TITLE


def extract_links(content: str) -> list[str]:
    """Return raw link targets in document order: ``<link url>`` first, then ``<a href>``."""
    soup = BeautifulSoup(content, "html.parser")
    links: list[str] = []
    seen: set[str] = set()

    elements = [*soup.find_all("link", attrs={"url": True}), *soup.find_all("a", attrs={"href": True})]
    for element in elements:
        target = element.get("url") if element.name == "link" else element.get("href")
        # BeautifulSoup can return list for attribute values, ensure it's a string
        if isinstance(target, list):
            target = target[0] if target else ""
        if not isinstance(target, str):
            continue
        target = target.strip()
        if target and target not in seen:
            seen.add(target)
            links.append(target)
    return links


def resolve_url(link: str, base_url: str) -> str | None:
    """Resolve ``link`` against ``base_url``.

    The fragment is dropped first. Absolute ``scheme://`` links then pass
    through unchanged; ``/path`` resolves against the base host and anything
    else against the directory of the base path, with ``.`` and ``..``
    segments collapsed. Returns None for a bare fragment or a malformed base.
    """
    link = link.split("#", 1)[0]
    if not link:
        return None
    if ABSOLUTE_URL_PATTERN.match(link):
        return link

    parts = split_url(base_url)
    if parts is None:
        return None
    scheme, host, base_path = parts

    if link.startswith("/"):
        path = link
    else:
        directory = base_path[: base_path.rfind("/") + 1] or "/"
        path = directory + link

    normalized = posixpath.normpath(path)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    if path.endswith("/") and not normalized.endswith("/"):
        normalized += "/"
    return f"{scheme}://{host}{normalized}"


def site_seed_url(site: str, scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://{site}/"


class SiteCrawler:
    """Crawl sites through a ``ContentFetcher`` and add their pages to an index."""

    def __init__(self, fetcher: ContentFetcher, config: CrawlConfig | None = None):
        self.fetcher = fetcher
        self.config = config or CrawlConfig()

    async def crawl_site(self, seed_url: str, index: SearchIndex) -> CrawlStats:
        """Crawl one site starting at ``seed_url``.

        Args:
            seed_url: Absolute ``scheme://host/path`` URL to start from
            index: Index receiving every page that is fetched and classified

        Returns:
            Statistics for this run; fetch failures are listed in ``errors``
        """
        parts = split_url(seed_url)
        if parts is None:
            logger.warning("Invalid seed URL: %s", seed_url)
            stats = CrawlStats(seed_url=seed_url, errors={seed_url: "Invalid URL"})
            stats.finished_at = stats.started_at
            return stats

        scheme, host, _ = parts
        state = CrawlState(seed_url=seed_url, host=host, delay_seconds=self.config.delay_seconds)
        state.frontier.append((seed_url, 0))

        with create_span("crawl.site", attributes={"crawl.seed_url": seed_url}) as span:
            if self.config.respect_robots_txt:
                state.robots = await self._load_robots(f"{scheme}://{host}")
                if state.robots.crawl_delay is not None:
                    state.delay_seconds = max(state.delay_seconds, state.robots.crawl_delay)

            logger.info("Starting crawl of %s (max_depth=%d)", seed_url, self.config.max_depth)
            await self._run(state, index)
            stats = self._finish(state)
            span.set_attribute("crawl.pages_indexed", stats.pages_indexed)
            span.set_attribute("crawl.pages_failed", stats.pages_failed)

        logger.info(
            "Crawl of %s complete: %d indexed, %d failed, %d visited in %.2fs",
            seed_url,
            stats.pages_indexed,
            stats.pages_failed,
            stats.total_visited,
            stats.elapsed,
        )
        return stats

    async def crawl_all(self, index: SearchIndex, scheme: str = DEFAULT_SCHEME) -> dict[str, CrawlStats]:
        """Crawl every site the fetcher knows about, one after another."""
        results: dict[str, CrawlStats] = {}
        sites = await self.fetcher.list_sites()
        logger.info("Crawling %d sites", len(sites))
        for site in sites:
            seed_url = site_seed_url(site, scheme)
            results[seed_url] = await self.crawl_site(seed_url, index)
        return results

    async def _load_robots(self, site_root: str) -> RobotsRules:
        path = url_to_path(site_root + ROBOTS_PATH)
        if path is None:
            return RobotsRules.allow_all()
        result = await self.fetcher.fetch(path)
        if not result.ok:
            logger.debug("No robots.txt for %s: %s", site_root, result.error)
            return RobotsRules.allow_all()
        text = result.content.decode("utf-8", errors="replace")  # type: ignore[union-attr]
        return parse_robots_txt(text, self.config.user_agent)

    async def _run(self, state: CrawlState, index: SearchIndex) -> None:
        stats = state.stats

        while state.frontier and stats.pages_indexed < self.config.max_pages:
            url, depth = state.frontier.popleft()

            if url in state.visited:
                continue
            parts = split_url(url)
            if parts is None or not state.robots.is_allowed(parts[2]):
                logger.debug("Skipping (disallowed): %s", url)
                CRAWL_PAGES.labels(status="disallowed").inc()
                continue

            state.visited.add(url)

            path = url_to_path(url)
            result = await self.fetcher.fetch(path) if path else None
            if result is None or not result.ok:
                error = result.error if result and result.error else "Invalid URL"
                stats.errors[url] = error
                stats.pages_failed += 1
                CRAWL_PAGES.labels(status="failed").inc()
                logger.debug("Failed to fetch %s: %s", url, error)
                continue

            doc_type = classify_document_type(url)
            if doc_type is None:
                stats.pages_skipped += 1
                CRAWL_PAGES.labels(status="skipped").inc()
                logger.debug("Skipping (unsupported extension): %s", url)
                continue

            content = result.content.decode("utf-8", errors="replace")  # type: ignore[union-attr]
            index.add_document(url, extract_title(content, doc_type), content, doc_type)
            stats.pages_indexed += 1
            CRAWL_PAGES.labels(status="indexed").inc()

            if depth < self.config.max_depth:
                self._enqueue_links(state, content, url, depth + 1)

            await asyncio.sleep(state.delay_seconds)

    def _enqueue_links(self, state: CrawlState, content: str, url: str, depth: int) -> None:
        for link in extract_links(content):
            resolved = resolve_url(link, url)
            if resolved is None or resolved in state.visited or not is_crawlable(resolved):
                continue
            if self.config.same_host_only:
                parts = split_url(resolved)
                if parts is None or parts[1] != state.host:
                    continue
            state.frontier.append((resolved, depth))

    def _finish(self, state: CrawlState) -> CrawlStats:
        stats = state.stats
        stats.total_visited = len(state.visited)
        stats.queue_remaining = len(state.frontier)
        stats.finished_at = datetime.now(timezone.utc)
        stats.elapsed = time.monotonic() - state.started
        return stats

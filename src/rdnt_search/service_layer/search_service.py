"""Search service orchestration layer.

Owns one ``SearchIndex`` together with its ``IndexStore``, a ``QueryEngine``
and a ``SiteCrawler``, and exposes the operations the CLI and other
components use. Mutations mark the index dirty; ``save_if_due`` writes it at
most once per autosave interval so bursts of changes cost one save.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
import time
from typing import Any

from rdnt_search.config import Settings
from rdnt_search.observability.metrics import INDEX_DOC_COUNT
from rdnt_search.search.engine import QueryEngine, SearchHit, SearchResponse
from rdnt_search.search.index import Clock, SearchIndex
from rdnt_search.search.models import DocumentType
from rdnt_search.search.persistence import IndexFormatError, IndexStore, deserialize_index
from rdnt_search.search.query import SITE_FILTER, TITLE_FILTER, TYPE_FILTER, parse_query
from rdnt_search.utils.content_fetcher import ContentFetcher, FilesystemContentFetcher
from rdnt_search.utils.crawler import CrawlConfig, CrawlStats, SiteCrawler


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewDocument:
    """Input record for batch additions."""

    url: str
    title: str | None
    content: str
    type: DocumentType = DocumentType.PLAIN_TEXT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> NewDocument:
        return cls(
            url=data["url"],
            title=data.get("title"),
            content=data.get("content", ""),
            type=DocumentType(data.get("type", DocumentType.PLAIN_TEXT)),
        )


class SearchService:
    """High-level search orchestration service."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: IndexStore | None = None,
        fetcher: ContentFetcher | None = None,
        engine: QueryEngine | None = None,
        clock: Clock | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """Initialize search service with dependencies.

        Args:
            settings: Settings instance; defaults are loaded from the environment when omitted
            store: Index persistence; defaults to ``settings.index_path``
            fetcher: Content source for crawling; defaults to ``settings.websites_root``
            engine: Query engine; defaults to one using ``settings.snippet_length``
            clock: Wall clock used for document timestamps
            monotonic: Clock used for the autosave interval
        """
        self.settings = settings or Settings()
        self.store = store or IndexStore(self.settings.index_path)
        self.fetcher = fetcher or FilesystemContentFetcher(self.settings.websites_root)
        self.engine = engine or QueryEngine(snippet_length=self.settings.snippet_length)
        self.crawler = SiteCrawler(self.fetcher, CrawlConfig.from_settings(self.settings))
        self._clock = clock
        self._monotonic = monotonic

        self.index = SearchIndex(clock=clock)
        self.dirty = False
        self._last_save = monotonic()

    # Lifecycle

    def load(self) -> SearchIndex:
        """Restore the index from the store (empty when missing or unreadable)."""
        self.index = self.store.restore(clock=self._clock)
        self.dirty = False
        self._last_save = self._monotonic()
        INDEX_DOC_COUNT.set(len(self.index))
        return self.index

    def save(self) -> bool:
        if not self.store.persist(self.index):
            return False
        self.dirty = False
        self._last_save = self._monotonic()
        return True

    def save_if_due(self) -> bool:
        """Persist when the index is dirty and the autosave interval has elapsed."""
        if not self.settings.autosave_enabled or not self.dirty:
            return False
        if self._monotonic() - self._last_save < self.settings.autosave_interval_seconds:
            return False
        return self.save()

    def close(self) -> bool:
        """Flush pending changes. Returns False when a needed save failed."""
        if self.dirty:
            return self.save()
        return True

    def _mark_dirty(self) -> None:
        self.dirty = True
        INDEX_DOC_COUNT.set(len(self.index))
        self.save_if_due()

    # Queries

    def search(self, query: str, *, limit: int | None = None, offset: int = 0) -> SearchResponse:
        return self.engine.search(
            self.index,
            query,
            limit=limit if limit is not None else self.settings.search_default_limit,
            offset=offset,
        )

    def suggestions(self, partial: str, limit: int = 10) -> list[str]:
        return self.engine.get_suggestions(self.index, partial, limit)

    def _search_with_filter(
        self, name: str, value: str, query: str, *, limit: int | None, offset: int
    ) -> SearchResponse:
        plan = parse_query(query)
        plan.add_filter(name, value.lower(), exclude=False)
        return self.engine.execute(
            self.index,
            plan,
            query=f"{name}:{value} {query}".strip(),
            limit=limit if limit is not None else self.settings.search_default_limit,
            offset=offset,
        )

    def search_by_type(
        self, doc_type: DocumentType | str, query: str, *, limit: int | None = None, offset: int = 0
    ) -> SearchResponse:
        return self._search_with_filter(TYPE_FILTER, DocumentType(doc_type).value, query, limit=limit, offset=offset)

    def search_by_site(self, site: str, query: str, *, limit: int | None = None, offset: int = 0) -> SearchResponse:
        return self._search_with_filter(SITE_FILTER, site, query, limit=limit, offset=offset)

    def search_in_title(self, query: str, *, limit: int | None = None, offset: int = 0) -> SearchResponse:
        """Search ``query`` and keep only documents whose title contains every query term."""
        plan = parse_query(query)
        for term in plan.terms:
            plan.add_filter(TITLE_FILTER, term, exclude=False)
        return self.engine.execute(
            self.index,
            plan,
            query=query,
            limit=limit if limit is not None else self.settings.search_default_limit,
            offset=offset,
        )

    def find_similar(self, doc_id: str, limit: int = 10) -> list[SearchHit]:
        return self.engine.find_similar(self.index, doc_id, limit)

    # Mutations

    def add_document(
        self,
        url: str,
        title: str | None,
        content: str,
        doc_type: DocumentType | str = DocumentType.PLAIN_TEXT,
        *,
        replace: bool = False,
    ) -> str:
        doc_id = self.index.add_document(url, title, content, doc_type, replace=replace)
        self._mark_dirty()
        return doc_id

    def add_documents(self, documents: Iterable[NewDocument | Mapping[str, Any]]) -> list[str]:
        """Add several documents and return their ids in input order."""
        doc_ids: list[str] = []
        for item in documents:
            doc = item if isinstance(item, NewDocument) else NewDocument.from_mapping(item)
            doc_ids.append(self.index.add_document(doc.url, doc.title, doc.content, doc.type))
        if doc_ids:
            self._mark_dirty()
        return doc_ids

    def remove_document(self, doc_id: str) -> bool:
        removed = self.index.remove_document(doc_id)
        if removed:
            self._mark_dirty()
        return removed

    def remove_documents(self, doc_ids: Iterable[str]) -> int:
        """Remove several documents. Returns how many existed."""
        removed = sum(1 for doc_id in doc_ids if self.index.remove_document(doc_id))
        if removed:
            self._mark_dirty()
        return removed

    def update_document(
        self,
        doc_id: str,
        url: str,
        title: str | None,
        content: str,
        doc_type: DocumentType | str = DocumentType.PLAIN_TEXT,
    ) -> str | None:
        """Replace ``doc_id`` with new content. Returns the new id, or None if ``doc_id`` is unknown."""
        if not self.index.remove_document(doc_id):
            return None
        new_id = self.index.add_document(url, title, content, doc_type)
        self._mark_dirty()
        return new_id

    def rebuild(self) -> None:
        self.index.rebuild()
        self._mark_dirty()

    def clear(self) -> None:
        self.index.clear()
        self._mark_dirty()

    # Crawling

    async def index_site(self, seed_url: str) -> CrawlStats:
        stats = await self.crawler.crawl_site(seed_url, self.index)
        if stats.pages_indexed:
            self._mark_dirty()
        return stats

    async def index_all_sites(self) -> dict[str, CrawlStats]:
        results = await self.crawler.crawl_all(self.index)
        if any(stats.pages_indexed for stats in results.values()):
            self._mark_dirty()
        return results

    # Import / export

    def export_index(self, path: Path | str) -> bool:
        return IndexStore(path).persist(self.index)

    def _read_index(self, path: Path | str) -> SearchIndex | None:
        try:
            return deserialize_index(Path(path).read_bytes(), clock=self._clock)
        except (OSError, IndexFormatError) as e:
            logger.warning("Failed to load index from %s: %s", path, e)
            return None

    def import_index(self, path: Path | str) -> bool:
        """Replace the current index with the one stored at ``path``."""
        index = self._read_index(path)
        if index is None:
            return False
        self.index = index
        self._mark_dirty()
        return True

    def merge_index(self, path: Path | str) -> int | None:
        """Adopt documents from another index whose ids are not present yet.

        Returns the number of merged documents, or None when ``path`` could
        not be loaded.
        """
        other = self._read_index(path)
        if other is None:
            return None
        merged = sum(1 for doc in other.documents.values() if self.index.insert_document(doc))
        if merged:
            self._mark_dirty()
        logger.info("Merged %d documents from %s", merged, path)
        return merged

    def stats(self) -> dict[str, Any]:
        stats = self.index.stats()
        stats["dirty"] = self.dirty
        stats["index_path"] = str(self.store.path)
        return stats

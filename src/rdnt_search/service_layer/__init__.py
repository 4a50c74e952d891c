"""Service layer - orchestrates the index, its store, the engine and the crawler."""

from .search_service import NewDocument, SearchService


__all__ = [
    "NewDocument",
    "SearchService",
]

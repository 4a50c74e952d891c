"""In-memory inverted index with positional postings.

``SearchIndex`` is an explicit handle: it owns the document table, the
term -> doc_id -> ``Posting`` table and the aggregate metadata. Nothing is
kept at module level, so several independent indices can live in one
process.

The index is single-writer and does no locking of its own. Callers that
share one instance between threads must wrap mutations (add, remove,
rebuild, clear) in a writer lock and keep searches out while they run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
import logging
import re
from typing import Any

import orjson

from rdnt_search.search.analyzers import tokenize
from rdnt_search.search.models import DEFAULT_TITLE, Document, DocumentType, IndexMetadata, Posting


logger = logging.getLogger(__name__)

_ID_UNSAFE_CHARS = re.compile(r"[^\w-]")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SearchIndex:
    """Document store plus inverted index.

    Re-indexing a URL creates a new document with a new id; pass
    ``replace=True`` to ``add_document`` to drop earlier copies first.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or _utc_now
        self.documents: dict[str, Document] = {}
        self.terms: dict[str, dict[str, Posting]] = {}
        self.metadata = IndexMetadata(last_update=self._clock())

    def __len__(self) -> int:
        return len(self.documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self.documents

    def generate_doc_id(self, url: str) -> str:
        """Return a fresh id built from the sanitized URL and a millisecond timestamp."""
        timestamp_ms = int(self._clock().timestamp() * 1000)
        base = f"{_ID_UNSAFE_CHARS.sub('_', url)}_{timestamp_ms}"
        doc_id = base
        suffix = 1
        while doc_id in self.documents:
            doc_id = f"{base}_{suffix}"
            suffix += 1
        return doc_id

    def add_document(
        self,
        url: str,
        title: str | None,
        content: str,
        doc_type: DocumentType | str = DocumentType.PLAIN_TEXT,
        *,
        replace: bool = False,
    ) -> str:
        """Store a document and index its content. Returns the new document id."""
        if replace:
            self.remove_by_url(url)

        doc_id = self.generate_doc_id(url)
        now = self._clock()
        self.documents[doc_id] = Document(
            id=doc_id,
            url=url,
            title=title or DEFAULT_TITLE,
            content=content,
            last_modified=now,
            size=len(content.encode("utf-8")),
            type=DocumentType(doc_type),
        )
        new_terms = self._index_content(doc_id, content)

        self.metadata.total_documents += 1
        self.metadata.last_update = now
        logger.debug("Indexed %s as %s (%d new terms)", url, doc_id, new_terms)
        return doc_id

    def insert_document(self, doc: Document) -> bool:
        """Adopt an existing document under its own id. Returns False if the id is taken."""
        if doc.id in self.documents:
            return False
        self.documents[doc.id] = doc
        self._index_content(doc.id, doc.content)
        self.metadata.total_documents += 1
        self.metadata.last_update = self._clock()
        return True

    def remove_document(self, doc_id: str) -> bool:
        """Remove a document and its postings. Returns False when the id is unknown."""
        if doc_id not in self.documents:
            logger.debug("Remove skipped, document not found: %s", doc_id)
            return False

        del self.documents[doc_id]

        for term in list(self.terms):
            postings = self.terms[term]
            postings.pop(doc_id, None)
            if not postings:
                del self.terms[term]
                self.metadata.total_terms -= 1

        self.metadata.total_documents -= 1
        self.metadata.last_update = self._clock()
        logger.debug("Removed document %s", doc_id)
        return True

    def remove_by_url(self, url: str) -> list[str]:
        """Remove every document stored for ``url`` and return the removed ids."""
        doc_ids = [doc.id for doc in self.documents.values() if doc.url == url]
        for doc_id in doc_ids:
            self.remove_document(doc_id)
        return doc_ids

    def get_document(self, doc_id: str) -> Document | None:
        return self.documents.get(doc_id)

    def find_by_url(self, url: str) -> list[Document]:
        return [doc for doc in self.documents.values() if doc.url == url]

    def postings(self, term: str) -> Mapping[str, Posting]:
        """Return the postings for ``term`` (empty mapping when absent)."""
        return self.terms.get(term, {})

    def document_frequency(self, term: str) -> int:
        return len(self.terms.get(term, ()))

    def vocabulary(self) -> Iterable[str]:
        return self.terms.keys()

    def rebuild(self) -> None:
        """Drop all postings and re-index the retained documents from scratch."""
        self.terms = {}
        self.metadata.total_terms = 0
        for doc_id, doc in self.documents.items():
            self._index_content(doc_id, doc.content)
        self.metadata.total_documents = len(self.documents)
        self.metadata.last_update = self._clock()
        logger.info(
            "Rebuilt index: %d documents, %d terms",
            self.metadata.total_documents,
            self.metadata.total_terms,
        )

    def clear(self) -> None:
        self.documents = {}
        self.terms = {}
        self.metadata.total_documents = 0
        self.metadata.total_terms = 0
        self.metadata.last_update = self._clock()

    def stats(self) -> dict[str, Any]:
        """Return index statistics, including the approximate serialized size in bytes."""
        return {
            "total_documents": self.metadata.total_documents,
            "total_terms": self.metadata.total_terms,
            "last_update": self.metadata.last_update.isoformat(),
            "version": self.metadata.version,
            "index_size": len(orjson.dumps(self.to_dict())),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": {doc_id: doc.to_dict() for doc_id, doc in self.documents.items()},
            "terms": {
                term: {doc_id: posting.to_dict() for doc_id, posting in postings.items()}
                for term, postings in self.terms.items()
            },
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, clock: Clock | None = None) -> SearchIndex:
        index = cls(clock=clock)
        index.documents = {doc_id: Document.from_dict(doc) for doc_id, doc in data["documents"].items()}
        index.terms = {
            term: {doc_id: Posting.from_dict(posting) for doc_id, posting in postings.items()}
            for term, postings in data["terms"].items()
        }
        index.metadata = IndexMetadata.from_dict(data["metadata"])
        return index

    def _index_content(self, doc_id: str, content: str) -> int:
        """Add postings for every token of ``content``. Returns the number of new term keys."""
        new_terms = 0
        for position, term in enumerate(tokenize(content)):
            postings = self.terms.get(term)
            if postings is None:
                postings = self.terms[term] = {}
                self.metadata.total_terms += 1
                new_terms += 1
            posting = postings.get(doc_id)
            if posting is None:
                posting = postings[doc_id] = Posting()
            posting.record(position)
        return new_terms

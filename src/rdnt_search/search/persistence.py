"""Whole-index persistence as a single orjson blob.

The blob layout is ``{"documents": ..., "terms": ..., "metadata": ...}``.
Writes go to a temporary sibling file that replaces the target, so a crash
never leaves a half-written index behind. Reads are validated against a
pydantic schema and the format version; anything unexpected yields a fresh
empty index instead of an exception.
"""

from __future__ import annotations

from contextlib import suppress
from datetime import datetime
import logging
import os
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rdnt_search.observability.metrics import INDEX_PERSIST
from rdnt_search.observability.tracing import create_span
from rdnt_search.search.index import Clock, SearchIndex
from rdnt_search.search.models import INDEX_FORMAT_VERSION, MAX_POSITIONS, DocumentType


logger = logging.getLogger(__name__)


class IndexFormatError(ValueError):
    """Raised when a persisted blob cannot be turned back into an index."""


class _StoredDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    url: str
    title: str
    content: str
    last_modified: datetime
    size: int = Field(ge=0)
    type: DocumentType


class _StoredPosting(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: int = Field(ge=1)
    positions: list[int] = Field(max_length=MAX_POSITIONS)


class _StoredMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_documents: int = Field(ge=0)
    total_terms: int = Field(ge=0)
    last_update: datetime
    version: int


class _StoredIndex(BaseModel):
    model_config = ConfigDict(extra="forbid")

    documents: dict[str, _StoredDocument]
    terms: dict[str, dict[str, _StoredPosting]]
    metadata: _StoredMetadata


def serialize_index(index: SearchIndex) -> bytes:
    return orjson.dumps(index.to_dict())


def deserialize_index(blob: bytes, *, clock: Clock | None = None) -> SearchIndex:
    """Rebuild an index from ``blob``.

    Raises:
        IndexFormatError: the blob is not valid JSON, does not match the
            index schema, has another format version, or its postings and
            counters disagree with its documents.
    """
    try:
        payload: Any = orjson.loads(blob)
    except orjson.JSONDecodeError as exc:
        raise IndexFormatError(f"Index blob is not valid JSON: {exc}") from exc

    try:
        stored = _StoredIndex.model_validate(payload)
    except ValidationError as exc:
        raise IndexFormatError(f"Index blob does not match the index schema: {exc.error_count()} errors") from exc

    if stored.metadata.version != INDEX_FORMAT_VERSION:
        raise IndexFormatError(
            f"Unsupported index version {stored.metadata.version} (expected {INDEX_FORMAT_VERSION})"
        )
    _check_consistency(stored)

    return SearchIndex.from_dict(stored.model_dump(), clock=clock)


def _check_consistency(stored: _StoredIndex) -> None:
    for doc_id, doc in stored.documents.items():
        if doc.id != doc_id:
            raise IndexFormatError(f"Document key {doc_id!r} does not match its id {doc.id!r}")

    for term, postings in stored.terms.items():
        if not postings:
            raise IndexFormatError(f"Term {term!r} has no postings")
        unknown = set(postings) - stored.documents.keys()
        if unknown:
            raise IndexFormatError(f"Term {term!r} references unknown documents: {sorted(unknown)[:3]}")

    if stored.metadata.total_documents != len(stored.documents):
        raise IndexFormatError("Metadata document count does not match the stored documents")
    if stored.metadata.total_terms != len(stored.terms):
        raise IndexFormatError("Metadata term count does not match the stored terms")


class IndexStore:
    """Persists a ``SearchIndex`` to one file and restores it."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def persist(self, index: SearchIndex) -> bool:
        """Write ``index`` atomically. Returns False (and logs) on I/O failure."""
        with create_span("index.persist", attributes={"index.path": str(self.path)}):
            tmp_path = self.path.with_name(f"{self.path.name}.tmp")
            try:
                blob = serialize_index(index)
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(blob)
                os.replace(tmp_path, self.path)
            except OSError as exc:
                logger.error("Failed to persist index to %s: %s", self.path, exc)
                INDEX_PERSIST.labels(operation="persist", outcome="error").inc()
                with suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
                return False

        INDEX_PERSIST.labels(operation="persist", outcome="ok").inc()
        logger.info(
            "Persisted index to %s (%d documents, %d bytes)",
            self.path,
            index.metadata.total_documents,
            len(blob),
        )
        return True

    def restore(self, *, clock: Clock | None = None) -> SearchIndex:
        """Load the index from disk, or return a fresh empty index when that is not possible."""
        with create_span("index.restore", attributes={"index.path": str(self.path)}):
            if not self.path.exists():
                logger.info("No index at %s, starting empty", self.path)
                return SearchIndex(clock=clock)

            try:
                blob = self.path.read_bytes()
            except OSError as exc:
                logger.warning("Failed to read index from %s: %s", self.path, exc)
                INDEX_PERSIST.labels(operation="restore", outcome="error").inc()
                return SearchIndex(clock=clock)

            try:
                index = deserialize_index(blob, clock=clock)
            except IndexFormatError as exc:
                logger.warning("Discarding index at %s: %s", self.path, exc)
                INDEX_PERSIST.labels(operation="restore", outcome="discarded").inc()
                return SearchIndex(clock=clock)

        INDEX_PERSIST.labels(operation="restore", outcome="ok").inc()
        logger.info("Restored index from %s (%d documents)", self.path, index.metadata.total_documents)
        return index

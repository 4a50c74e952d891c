"""Search data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


MAX_POSITIONS = 10
INDEX_FORMAT_VERSION = 1
DEFAULT_TITLE = "Untitled"


class DocumentType(StrEnum):
    """Closed set of content types the crawler and the engine understand."""

    RWML = "rwml"
    SCRIPT = "script"
    PLAIN_TEXT = "plain-text"
    HTML = "html"

    @property
    def is_markup(self) -> bool:
        return self in (DocumentType.RWML, DocumentType.HTML)


@dataclass(frozen=True)
class Document:
    """An indexed page. Owned by ``SearchIndex`` and never mutated."""

    id: str
    url: str
    title: str
    content: str
    last_modified: datetime
    size: int
    type: DocumentType

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "last_modified": self.last_modified.isoformat(),
            "size": self.size,
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        last_modified = data["last_modified"]
        if isinstance(last_modified, str):
            last_modified = datetime.fromisoformat(last_modified)
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return cls(
            id=data["id"],
            url=data["url"],
            title=data["title"],
            content=data["content"],
            last_modified=last_modified,
            size=int(data["size"]),
            type=DocumentType(data["type"]),
        )


@dataclass
class Posting:
    """Occurrences of one term in one document.

    ``positions`` keeps at most ``MAX_POSITIONS`` token offsets while ``count``
    keeps counting every occurrence.
    """

    count: int = 0
    positions: list[int] = field(default_factory=list)

    def record(self, position: int) -> None:
        self.count += 1
        if len(self.positions) < MAX_POSITIONS:
            self.positions.append(position)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "positions": list(self.positions)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Posting:
        return cls(count=int(data.get("count", 0)), positions=[int(p) for p in data.get("positions", [])])


@dataclass
class IndexMetadata:
    """Aggregate counters kept in step with every index mutation."""

    total_documents: int = 0
    total_terms: int = 0
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = INDEX_FORMAT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_documents": self.total_documents,
            "total_terms": self.total_terms,
            "last_update": self.last_update.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexMetadata:
        last_update = data["last_update"]
        if isinstance(last_update, str):
            last_update = datetime.fromisoformat(last_update)
        return cls(
            total_documents=int(data["total_documents"]),
            total_terms=int(data["total_terms"]),
            last_update=last_update,
            version=int(data["version"]),
        )

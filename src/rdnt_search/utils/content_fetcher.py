"""Content fetch collaborators used by the crawler.

The crawler never touches storage itself. It converts each URL to a
``host/path`` string with ``url_to_path`` and asks a ``ContentFetcher`` for
the bytes. ``FilesystemContentFetcher`` serves a directory tree laid out as
``<root>/<host>/<path>``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import re
from typing import Protocol

import anyio


logger = logging.getLogger(__name__)

INDEX_FILENAMES = ("index.rwml", "index.lua", "index.html")

URL_PATTERN = re.compile(r"^(?P<scheme>[a-zA-Z][\w+.-]*)://(?P<host>[^/?#]+)(?P<path>[^?#]*)")


@dataclass(frozen=True)
class FetchResult:
    """Raw bytes of a page, or the reason they could not be read."""

    content: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None

    @classmethod
    def failure(cls, error: str) -> FetchResult:
        return cls(content=None, error=error)


class ContentFetcher(Protocol):
    """Protocol implemented by content sources."""

    async def fetch(self, path: str) -> FetchResult:  # pragma: no cover - interface definition
        ...

    async def list_sites(self) -> list[str]:  # pragma: no cover - interface definition
        ...


def url_to_path(url: str) -> str | None:
    """Map ``scheme://host/path`` to ``host/path``; None for malformed URLs."""
    match = URL_PATTERN.match(url)
    if not match:
        return None
    return f"{match.group('host')}{match.group('path') or '/'}"


class FilesystemContentFetcher:
    """Serve site content from a local directory tree."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path | None:
        root = self.root.resolve()
        candidate = (root / path.lstrip("/")).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    async def fetch(self, path: str) -> FetchResult:
        target = self._resolve(path)
        if target is None:
            logger.warning("Refusing to fetch outside the content root: %s", path)
            return FetchResult.failure(f"Path escapes content root: {path}")

        candidates = [target] if await anyio.Path(target).is_file() else []
        candidates.extend(target / name for name in INDEX_FILENAMES)

        for candidate in candidates:
            if not await anyio.Path(candidate).is_file():
                continue
            try:
                async with await anyio.open_file(candidate, "rb") as fp:
                    return FetchResult(content=await fp.read())
            except OSError as e:
                logger.debug("Failed to read %s: %s", candidate, e)
                return FetchResult.failure(f"Unreadable: {path} ({e})")

        return FetchResult.failure(f"Not found: {path}")

    async def list_sites(self) -> list[str]:
        """Return the host names that have a directory under the root."""
        root = anyio.Path(self.root)
        if not await root.is_dir():
            return []
        return sorted([entry.name async for entry in root.iterdir() if await entry.is_dir()])

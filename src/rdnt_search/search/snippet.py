"""Snippet extraction for search result previews.

The window opens ``LEAD_CONTEXT`` characters before the earliest match and
spans at most ``max_length`` characters. Both edges move inward to the
nearest whitespace (or out of a tag they cut through) so words are not
split, markup is stripped, whitespace is collapsed, and an ellipsis marks
each side where visible text was cut off.
"""

from __future__ import annotations

from collections.abc import Sequence
import re


LEAD_CONTEXT = 50
DEFAULT_MAX_LENGTH = 150
ELLIPSIS = "..."

TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")


def find_first_match(content: str, terms: Sequence[str]) -> tuple[int, int]:
    """Return ``(position, length)`` of the earliest case-insensitive match outside markup, or ``(-1, 0)``."""
    lowered = content.lower()
    best_pos = -1
    best_len = 0
    for term in terms:
        if not term:
            continue
        needle = term.lower()
        pos = lowered.find(needle)
        while pos != -1 and _inside_tag(content, pos):
            pos = lowered.find(needle, pos + 1)
        if pos != -1 and (best_pos == -1 or pos < best_pos):
            best_pos = pos
            best_len = len(term)
    return best_pos, best_len


def _inside_tag(content: str, pos: int) -> bool:
    return content.rfind("<", 0, pos) > content.rfind(">", 0, pos)


def _snap_start(content: str, start: int, match_pos: int) -> int:
    """Move ``start`` forward to a word or tag boundary that is still before the match."""
    if start <= 0:
        return 0
    if _inside_tag(content, start):
        close = content.find(">", start, match_pos)
        if close != -1:
            return close + 1
    if content[start - 1].isspace() or content[start - 1] == ">":
        return start
    boundary = WHITESPACE_PATTERN.search(content, start, max(match_pos, start))
    if boundary:
        return boundary.end()
    return start


def _snap_end(content: str, end: int, match_end: int) -> int:
    """Move ``end`` back to a word or tag boundary that is still after the match."""
    if end >= len(content):
        return len(content)
    if _inside_tag(content, end):
        opening = content.rfind("<", match_end, end)
        if opening != -1:
            return opening
    if content[end].isspace() or content[end] == "<":
        return end
    last_space = max(content.rfind(sep, match_end, end) for sep in (" ", "\n", "\t", "\r"))
    if last_space != -1:
        return last_space
    return end


def clean_snippet_text(text: str) -> str:
    text = TAG_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def generate_snippet(content: str, terms: Sequence[str], max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Build a preview of ``content`` around the earliest occurrence of any of ``terms``.

    The result never exceeds ``max_length`` plus two ellipsis markers, and it
    contains the matched term whenever that term occurs outside markup.
    """
    if not content:
        return ""

    match_pos, match_len = find_first_match(content, terms)
    if match_pos == -1:
        match_pos, match_len = 0, 0
    match_end = match_pos + match_len

    start = max(0, match_pos - LEAD_CONTEXT)
    if match_end - start > max_length:
        # keep the whole match inside the window
        start = max(0, match_end - max_length)
    end = min(len(content), start + max_length)

    start = _snap_start(content, start, match_pos)
    end = _snap_end(content, end, match_end)

    snippet = clean_snippet_text(content[start:end])
    if clean_snippet_text(content[:start]):
        snippet = ELLIPSIS + snippet
    if clean_snippet_text(content[end:]):
        snippet = snippet + ELLIPSIS
    return snippet

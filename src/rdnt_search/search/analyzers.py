"""Analyzer utilities for the rdnt search index.

Text is turned into index terms by a small composable pipeline: a markup
stripper, a regex tokenizer and a chain of token filters. ``tokenize`` wires
the default pipeline and is the only entry point the index and the engine
need; the individual stages are exposed so tests can exercise them alone.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
import re
from typing import Protocol


TAG_PATTERN = re.compile(r"<[^>]+>")
# Word runs: letters, digits, underscore and hyphen
WORD_PATTERN = re.compile(r"[\w-]+", re.UNICODE)
NUMERIC_PATTERN = re.compile(r"^\d+$")

MIN_TOKEN_LENGTH = 2


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int

    def copy_with(self, **updates: object) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }
        data.update(updates)
        return Token(**data)  # type: ignore[arg-type]


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


def strip_markup(text: str) -> str:
    """Replace every ``<...>`` tag with a single space."""
    return TAG_PATTERN.sub(" ", text)


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens."""

    def __init__(self, pattern: re.Pattern[str] = WORD_PATTERN) -> None:
        self.pattern = pattern

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


class MinLengthFilter:
    """Drops tokens shorter than ``min_length`` characters."""

    def __init__(self, min_length: int = MIN_TOKEN_LENGTH) -> None:
        self.min_length = min_length

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if len(token.text) >= self.min_length:
                yield token


class NumericFilter:
    """Drops tokens made only of digits."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if not NUMERIC_PATTERN.match(token.text):
                yield token


class AnalyzerPipeline:
    """Composable analyzer pipeline (markup stripping + tokenizer + filters)."""

    def __init__(
        self,
        tokenizer: Tokenizer,
        filters: Sequence[TokenFilter] | None = None,
        *,
        strip_tags: bool = True,
    ) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])
        self.strip_tags = strip_tags

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        if self.strip_tags:
            text = strip_markup(text)
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens


def build_default_analyzer() -> AnalyzerPipeline:
    return AnalyzerPipeline(
        RegexTokenizer(),
        [LowercaseFilter(), MinLengthFilter(), NumericFilter()],
    )


_DEFAULT_ANALYZER = build_default_analyzer()


def tokenize(text: str) -> list[str]:
    """Return the ordered index terms for ``text``.

    Lowercases, replaces tags with spaces, splits into word runs and drops
    tokens shorter than two characters or made only of digits.
    """
    return [token.text for token in _DEFAULT_ANALYZER(text)]

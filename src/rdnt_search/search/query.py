"""Query parsing and filter matching.

Query grammar:

* bare words are required terms (implicit ``AND``)
* ``AND`` / ``OR`` switch the mode for the words that follow; ``OR`` also
  turns the required word right before it into an optional one, so
  ``a OR b`` means "a or b"
* ``NOT word``, ``- word`` and ``-word`` exclude one word
* ``"quoted text"`` is an exact phrase
* ``field:value`` restricts results (``site``, ``type``, ``title``); it can be
  negated like a word

Words are split on whitespace and lowercased, not run through the index
tokenizer, so punctuation in a query word is kept as typed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import re
from typing import Any

from rdnt_search.search.models import Document


PHRASE_PATTERN = re.compile(r'"([^"]+)"')
FILTER_PATTERN = re.compile(r"^(\w+):(.+)$")

SITE_FILTER = "site"
TYPE_FILTER = "type"
TITLE_FILTER = "title"
KNOWN_FILTERS = frozenset({SITE_FILTER, TYPE_FILTER, TITLE_FILTER})


@dataclass(frozen=True)
class FilterClause:
    value: str
    exclude: bool = False


@dataclass
class QueryPlan:
    """Structured form of a raw query string."""

    required: list[str] = field(default_factory=list)
    optional: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    filters: dict[str, list[FilterClause]] = field(default_factory=dict)

    @property
    def terms(self) -> list[str]:
        """Required then optional terms, in query order within each group."""
        return [*self.required, *self.optional]

    def is_empty(self) -> bool:
        return not self.required and not self.optional and not self.phrases

    def add_filter(self, name: str, value: str, *, exclude: bool) -> None:
        self.filters.setdefault(name, []).append(FilterClause(value=value, exclude=exclude))

    def to_dict(self) -> dict[str, Any]:
        return {
            "required": list(self.required),
            "optional": list(self.optional),
            "excluded": list(self.excluded),
            "phrases": list(self.phrases),
            "filters": {
                name: [{"value": clause.value, "exclude": clause.exclude} for clause in clauses]
                for name, clauses in self.filters.items()
            },
        }


def parse_query(raw: str) -> QueryPlan:
    """Parse ``raw`` into a ``QueryPlan``."""
    plan = QueryPlan()

    plan.phrases = [phrase.lower() for phrase in PHRASE_PATTERN.findall(raw)]
    remainder = PHRASE_PATTERN.sub(" ", raw)

    tokens = remainder.split()
    mode_is_or = False
    negate_next = False
    last_was_required = False

    for token in tokens:
        keyword = token.upper()

        if not negate_next and keyword == "AND":
            mode_is_or = False
            last_was_required = False
            continue
        if not negate_next and keyword == "OR":
            if last_was_required:
                plan.optional.append(plan.required.pop())
            mode_is_or = True
            last_was_required = False
            continue
        if keyword == "NOT" or token == "-":
            negate_next = True
            last_was_required = False
            continue

        negated = negate_next
        negate_next = False
        if token.startswith("-"):
            negated = True
            token = token[1:]

        term = token.lower()
        last_was_required = False
        filter_match = FILTER_PATTERN.match(term)
        if filter_match:
            plan.add_filter(filter_match.group(1), filter_match.group(2), exclude=negated)
        elif negated:
            plan.excluded.append(term)
        elif mode_is_or:
            plan.optional.append(term)
        else:
            plan.required.append(term)
            last_was_required = True

    return plan


def _filter_matches(doc: Document, name: str, value: str) -> bool:
    if name == SITE_FILTER:
        return value in doc.url.lower()
    if name == TYPE_FILTER:
        return doc.type.value == value
    if name == TITLE_FILTER:
        return value in doc.title.lower()
    # Unknown fields never match: a positive one rejects everything, a negated one is a no-op
    return False


def matches_filters(doc: Document, filters: Mapping[str, Sequence[FilterClause]]) -> bool:
    """Return True when ``doc`` passes every filter clause."""
    for name, clauses in filters.items():
        for clause in clauses:
            matched = _filter_matches(doc, name, clause.value)
            if matched == clause.exclude:
                return False
    return True


def contains_phrase(content: str, phrase: str) -> bool:
    """Case-insensitive raw substring check against the full content."""
    return phrase.lower() in content.lower()

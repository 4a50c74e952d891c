"""Query execution: candidate gathering, scoring, ranking and pagination.

Scoring is TF-IDF-like. Each matched term contributes
``count * log(total_documents / document_frequency)`` and the sum is then
multiplied by the title, phrase, URL and recency boosts.

Excluded terms and phrases are checked as raw substrings of the lowercased
content rather than through the positional postings. This is exact but costs
``O(len(content))`` per candidate and check, which is fine for the corpus
sizes this engine targets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math
from typing import Any

from rdnt_search.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from rdnt_search.observability.tracing import create_span
from rdnt_search.search.index import SearchIndex
from rdnt_search.search.models import Document
from rdnt_search.search.query import QueryPlan, contains_phrase, matches_filters, parse_query
from rdnt_search.search.snippet import DEFAULT_MAX_LENGTH, generate_snippet


logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
SIMILAR_TERM_COUNT = 5
SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class SearchHit:
    document: Document
    score: float
    matched_terms: tuple[str, ...]
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "score": self.score,
            "matched_terms": list(self.matched_terms),
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class SearchResponse:
    """One page of ranked hits plus the pre-pagination total."""

    results: list[SearchHit]
    total: int
    query: str
    parsed: QueryPlan = field(default_factory=QueryPlan)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [hit.to_dict() for hit in self.results],
            "total": self.total,
            "query": self.query,
            "parsed": self.parsed.to_dict(),
        }


@dataclass
class _Candidate:
    partials: dict[str, float] = field(default_factory=dict)

    @property
    def base_score(self) -> float:
        return sum(self.partials.values())


class QueryEngine:
    """Evaluates parsed queries against a ``SearchIndex``."""

    def __init__(
        self,
        *,
        title_boost: float = 1.5,
        phrase_boost: float = 2.0,
        url_boost: float = 1.2,
        recency_weight: float = 0.2,
        recency_decay_days: float = 30.0,
        snippet_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        self.title_boost = title_boost
        self.phrase_boost = phrase_boost
        self.url_boost = url_boost
        self.recency_weight = recency_weight
        self.recency_decay_days = recency_decay_days
        self.snippet_length = snippet_length

    def search(
        self,
        index: SearchIndex,
        raw_query: str,
        *,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        now: datetime | None = None,
    ) -> SearchResponse:
        """Parse ``raw_query`` and return one ranked page of results.

        Args:
            index: Index to search
            raw_query: Query string (see ``rdnt_search.search.query``)
            limit: Maximum number of hits in the page
            offset: Number of ranked hits to skip
            now: Reference time for the recency boost (defaults to current UTC time)
        """
        plan = parse_query(raw_query)
        with (
            create_span("search.query", attributes={"search.query": raw_query}) as span,
            track_latency(SEARCH_LATENCY, operation="search"),
        ):
            if plan.is_empty():
                SEARCH_REQUESTS.labels(outcome="empty").inc()
                return SearchResponse(results=[], total=0, query=raw_query, parsed=plan)

            response = self.execute(index, plan, query=raw_query, limit=limit, offset=offset, now=now)
            span.set_attribute("search.total", response.total)
            SEARCH_REQUESTS.labels(outcome="hit" if response.total else "miss").inc()
            logger.debug("Query %r matched %d documents", raw_query, response.total)
            return response

    def execute(
        self,
        index: SearchIndex,
        plan: QueryPlan,
        *,
        query: str = "",
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        now: datetime | None = None,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> SearchResponse:
        """Run an already-parsed plan."""
        if plan.is_empty():
            return SearchResponse(results=[], total=0, query=query, parsed=plan)

        now = now or datetime.now(timezone.utc)
        scored: list[tuple[float, Document, tuple[str, ...]]] = []

        for doc_id, candidate in self._gather_candidates(index, plan).items():
            if doc_id in exclude_ids:
                continue
            doc = index.documents.get(doc_id)
            if doc is None or not self._qualifies(doc, candidate, plan):
                continue
            score = self._score(doc, candidate, plan, now)
            matched = tuple(candidate.partials)
            scored.append((score, doc, matched))

        scored.sort(key=lambda item: item[0], reverse=True)

        offset = max(offset, 0)
        page = scored[offset : offset + max(limit, 0)]
        snippet_terms = [*plan.terms, *plan.phrases]
        results = [
            SearchHit(
                document=doc,
                score=score,
                matched_terms=matched,
                snippet=generate_snippet(doc.content, snippet_terms, self.snippet_length),
            )
            for score, doc, matched in page
        ]
        return SearchResponse(results=results, total=len(scored), query=query, parsed=plan)

    def get_suggestions(self, index: SearchIndex, partial: str, limit: int = 10) -> list[str]:
        """Vocabulary terms starting with ``partial``, most frequent first."""
        prefix = partial.lower()
        if not prefix:
            return []
        with track_latency(SEARCH_LATENCY, operation="suggest"):
            matches = [term for term in index.vocabulary() if term.startswith(prefix)]
            matches.sort(key=lambda term: (-index.document_frequency(term), term))
            return matches[: max(limit, 0)]

    def find_similar(self, index: SearchIndex, doc_id: str, limit: int = 10) -> list[SearchHit]:
        """Documents sharing the most frequent terms of ``doc_id``, excluding itself."""
        if doc_id not in index:
            return []

        counts = [(posting.count, term) for term, postings in index.terms.items() if (posting := postings.get(doc_id))]
        counts.sort(key=lambda item: (-item[0], item[1]))
        top_terms = [term for _, term in counts[:SIMILAR_TERM_COUNT]]
        if not top_terms:
            return []

        plan = QueryPlan(optional=top_terms)
        with track_latency(SEARCH_LATENCY, operation="similar"):
            response = self.execute(
                index,
                plan,
                query=" OR ".join(top_terms),
                limit=limit,
                exclude_ids=frozenset({doc_id}),
            )
        return response.results

    def _gather_candidates(self, index: SearchIndex, plan: QueryPlan) -> dict[str, _Candidate]:
        candidates: dict[str, _Candidate] = {}

        if not plan.terms:
            # Phrase-only query: every document holding all phrases is a candidate
            for doc_id, doc in index.documents.items():
                lowered = doc.content.lower()
                if all(phrase in lowered for phrase in plan.phrases):
                    candidates[doc_id] = _Candidate(
                        partials={phrase: float(lowered.count(phrase)) for phrase in plan.phrases}
                    )
            return candidates

        total_documents = index.metadata.total_documents
        for term in plan.terms:
            postings = index.postings(term)
            if not postings:
                continue
            idf = math.log(total_documents / len(postings)) if total_documents > 0 else 0.0
            for doc_id, posting in postings.items():
                candidate = candidates.setdefault(doc_id, _Candidate())
                candidate.partials[term] = candidate.partials.get(term, 0.0) + posting.count * idf
        return candidates

    def _qualifies(self, doc: Document, candidate: _Candidate, plan: QueryPlan) -> bool:
        if any(term not in candidate.partials for term in plan.required):
            return False
        if plan.optional and not any(term in candidate.partials for term in plan.optional):
            return False

        lowered = doc.content.lower()
        if any(term in lowered for term in plan.excluded):
            return False
        if not all(contains_phrase(doc.content, phrase) for phrase in plan.phrases):
            return False
        return matches_filters(doc, plan.filters)

    def _score(self, doc: Document, candidate: _Candidate, plan: QueryPlan, now: datetime) -> float:
        score = candidate.base_score

        title = doc.title.lower()
        if any(term in title for term in plan.terms):
            score *= self.title_boost
        if plan.phrases:
            score *= self.phrase_boost
        url = doc.url.lower()
        if any(term in url for term in plan.terms):
            score *= self.url_boost

        age_days = max((now - doc.last_modified).total_seconds() / SECONDS_PER_DAY, 0.0)
        recency = 1.0 / (1.0 + age_days / self.recency_decay_days)
        return score * (1.0 + recency * self.recency_weight)

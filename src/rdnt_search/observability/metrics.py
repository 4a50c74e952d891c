"""Prometheus metrics for search, crawl and persistence."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


SEARCH_LATENCY = Histogram(
    "rdnt_search_latency_seconds",
    "Search query latency",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

SEARCH_REQUESTS = Counter(
    "rdnt_search_requests_total",
    "Total search queries",
    ["outcome"],
)

CRAWL_PAGES = Counter(
    "rdnt_crawl_pages_total",
    "Pages handled by the crawler",
    ["status"],
)

INDEX_PERSIST = Counter(
    "rdnt_index_persist_total",
    "Index persistence operations",
    ["operation", "outcome"],
)

INDEX_DOC_COUNT = Gauge(
    "rdnt_index_document_count",
    "Documents in the index",
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()

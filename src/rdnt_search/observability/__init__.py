"""Observability module for tracing, metrics, and logging."""

from rdnt_search.observability.context import get_trace_context, set_trace_context, trace_context
from rdnt_search.observability.logging import JsonFormatter, configure_logging
from rdnt_search.observability.metrics import (
    CRAWL_PAGES,
    INDEX_DOC_COUNT,
    INDEX_PERSIST,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    get_metrics,
    track_latency,
)
from rdnt_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "CRAWL_PAGES",
    "INDEX_DOC_COUNT",
    "INDEX_PERSIST",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]

"""Command line interface for crawling, searching and maintaining the index."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys
from typing import Any

import orjson
from pydantic import ValidationError

from rdnt_search.config import Settings
from rdnt_search.observability.logging import configure_logging
from rdnt_search.observability.metrics import get_metrics
from rdnt_search.observability.tracing import init_tracing
from rdnt_search.search.engine import SearchResponse
from rdnt_search.service_layer.search_service import SearchService


logger = logging.getLogger(__name__)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rdnt-search",
        description="Crawl rdnt:// sites and query the full-text index",
    )
    parser.add_argument("--index-path", type=Path, help="Persisted index file (overrides INDEX_PATH)")
    parser.add_argument("--websites-root", type=Path, help="Site content directory (overrides WEBSITES_ROOT)")
    parser.add_argument("--log-level", help="Logging level (overrides LOG_LEVEL)")
    parser.add_argument("--log-json", action="store_true", default=None, help="Emit structured JSON logs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl one site and index its pages")
    crawl.add_argument("seed", help="Seed URL, e.g. rdnt://home/")

    subparsers.add_parser("crawl-all", help="Crawl every site under the websites root")

    search = subparsers.add_parser("search", help="Run a query")
    search.add_argument("query", help='Query string, e.g. \'fox -lazy "red fox" site:blog\'')
    search.add_argument("--limit", type=int, help="Maximum results (default: SEARCH_DEFAULT_LIMIT)")
    search.add_argument("--offset", type=int, default=0, help="Ranked results to skip")
    search.add_argument("--json", action="store_true", help="Print the full response as JSON")

    suggest = subparsers.add_parser("suggest", help="Complete a partial term from the vocabulary")
    suggest.add_argument("prefix")
    suggest.add_argument("--limit", type=int, default=10)

    subparsers.add_parser("stats", help="Print index statistics")
    subparsers.add_parser("rebuild", help="Re-tokenize every stored document")

    remove = subparsers.add_parser("remove", help="Remove a document by id")
    remove.add_argument("doc_id")

    subparsers.add_parser("metrics", help="Print Prometheus metrics for this run")

    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {
        "index_path": args.index_path,
        "websites_root": args.websites_root,
        "log_level": args.log_level,
        "log_json": args.log_json,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def _write_json(payload: Any) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n")


def _print_results(response: SearchResponse) -> None:
    sys.stdout.write(f"{response.total} result(s) for {response.query!r}\n")
    for rank, hit in enumerate(response.results, start=1):
        sys.stdout.write(f"{rank:>3}. {hit.document.title}  [{hit.score:.3f}]\n")
        sys.stdout.write(f"     {hit.document.url}\n")
        if hit.snippet:
            sys.stdout.write(f"     {hit.snippet}\n")


def _save(service: SearchService) -> int:
    if service.save():
        return 0
    logger.error("Failed to save index to %s", service.store.path)
    return 1


def _run_command(service: SearchService, args: argparse.Namespace) -> int:
    match args.command:
        case "crawl":
            stats = asyncio.run(service.index_site(args.seed))
            _write_json(stats.to_dict())
            if args.seed in stats.errors and not stats.pages_indexed:
                return 1
            return _save(service)
        case "crawl-all":
            results = asyncio.run(service.index_all_sites())
            _write_json({seed: stats.to_dict() for seed, stats in results.items()})
            return _save(service)
        case "search":
            response = service.search(args.query, limit=args.limit, offset=args.offset)
            if args.json:
                _write_json(response.to_dict())
            else:
                _print_results(response)
            return 0
        case "suggest":
            for term in service.suggestions(args.prefix, args.limit):
                sys.stdout.write(term + "\n")
            return 0
        case "stats":
            _write_json(service.stats())
            return 0
        case "rebuild":
            service.rebuild()
            return _save(service)
        case "remove":
            if not service.remove_document(args.doc_id):
                logger.error("Document not found: %s", args.doc_id)
                return 1
            return _save(service)
        case "metrics":
            sys.stdout.write(get_metrics().decode("utf-8"))
            return 0
    logger.error("Unknown command: %s", args.command)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
    except ValidationError as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 1

    configure_logging(settings.log_level, settings.log_json)
    init_tracing()

    service = SearchService(settings)
    service.load()
    return _run_command(service, args)


if __name__ == "__main__":
    sys.exit(main())

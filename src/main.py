# src/main.py - v2
"""CLI entry point: search, warm, stats, health and clear commands.

Usage:
    ragsearch search "<query>" [options]
    ragsearch warm <queries-file>
    ragsearch stats
    ragsearch health
    ragsearch clear

Command output is JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ragsearch.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from ragsearch.config.settings import load_settings

    overrides: dict[str, Any] = {}
    if args.corpus is not None:
        overrides["index_corpus_path"] = args.corpus
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    settings = load_settings(**overrides)
    _setup_logging(settings)

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ragsearch",
        description=f"ragsearch v{__version__} - cached hybrid search for RAG",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--corpus", type=Path, default=None,
        help="JSONL corpus for the in-memory index (overrides INDEX_CORPUS_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- search ---
    p_search = subparsers.add_parser("search", help="Run one search")
    p_search.add_argument("query", help="Search text")
    p_search.add_argument("-n", "--limit", type=int, default=10)
    p_search.add_argument("--offset", type=int, default=0)
    p_search.add_argument("--session", default=None, help="Session id")
    p_search.add_argument("--user", default=None, help="User id")
    p_search.add_argument(
        "--weights", default=None,
        help="Source weight override, e.g. github=1.5,web=0.5",
    )
    p_search.add_argument(
        "--source", action="append", default=[], dest="sources",
        help="Restrict results to a source (repeatable)",
    )
    p_search.add_argument(
        "--timeout-ms", type=int, default=5000,
        help="Request timeout in milliseconds (default: 5000)",
    )
    p_search.add_argument(
        "--fresh", action="store_true",
        help="Bypass cached results and embeddings",
    )
    p_search.add_argument(
        "--no-content", action="store_true",
        help="Omit document content from results",
    )
    p_search.set_defaults(func=_cmd_search)

    # --- warm ---
    p_warm = subparsers.add_parser(
        "warm", help="Warm the result cache from a query file",
    )
    p_warm.add_argument(
        "file", type=Path,
        help="JSON list of queries (strings or objects) or one query per line",
    )
    p_warm.set_defaults(func=_cmd_warm)

    # --- stats / health / clear ---
    subparsers.add_parser("stats", help="Show cache statistics").set_defaults(
        func=_cmd_stats
    )
    subparsers.add_parser("health", help="Check component health").set_defaults(
        func=_cmd_health
    )
    subparsers.add_parser("clear", help="Clear every cache type").set_defaults(
        func=_cmd_clear
    )

    return parser


async def _run(args: argparse.Namespace, settings: Any) -> int:
    from ragsearch.api.facade import build_search_service

    orchestrator = await build_search_service(settings)
    try:
        return await args.func(args, orchestrator)
    finally:
        await orchestrator.close()


async def _cmd_search(args: argparse.Namespace, orchestrator: Any) -> int:
    """Execute one search and print the response."""
    from ragsearch.search.errors import SearchError, describe_error
    from ragsearch.search.models import SearchFilters, SearchParams

    try:
        params = SearchParams(
            query=args.query,
            limit=args.limit,
            offset=args.offset,
            session_id=args.session,
            user_id=args.user,
            source_weights=_parse_weights(args.weights),
            filters=SearchFilters(sources=args.sources) if args.sources else None,
            timeout_ms=args.timeout_ms,
            include_content=not args.no_content,
            force_fresh=args.fresh,
        )
        response = await orchestrator.search(params)
    except (SearchError, ValueError) as e:
        _print_json(describe_error(e))
        return 1

    _print_json(response.model_dump(mode="json", exclude_none=True))
    return 0


async def _cmd_warm(args: argparse.Namespace, orchestrator: Any) -> int:
    """Warm the result cache; fails if any query failed."""
    from ragsearch.search.models import WarmQuery

    file_path: Path = args.file
    if not file_path.exists():
        logger.error("File not found: %s", file_path)
        return 1

    queries = [
        WarmQuery(query=q) if isinstance(q, str) else WarmQuery.model_validate(q)
        for q in _read_queries(file_path)
    ]
    result = await orchestrator.warm_cache(queries)
    _print_json(result.model_dump())
    return 0 if result.failed == 0 else 1


async def _cmd_stats(args: argparse.Namespace, orchestrator: Any) -> int:
    _print_json(orchestrator.get_cache_stats().model_dump(mode="json"))
    return 0


async def _cmd_health(args: argparse.Namespace, orchestrator: Any) -> int:
    from ragsearch.search.orchestrator import (
        create_health_response,
        create_unhealthy_response,
    )

    try:
        components = await orchestrator.health_check()
    except Exception as e:
        logger.error("Health check failed: %s", e)
        _print_json(create_unhealthy_response(e))
        return 1

    response = create_health_response(components["cache"].get("healthy", False))
    response["components"] = components
    _print_json(response)
    return 0


async def _cmd_clear(args: argparse.Namespace, orchestrator: Any) -> int:
    cleared = await orchestrator.clear_all_caches()
    _print_json({"cleared": cleared})
    return 0 if cleared else 1


def _parse_weights(text: str | None) -> dict[str, float] | None:
    """Parse ``github=1.5,web=0.5`` into a weight map."""
    if not text:
        return None
    weights: dict[str, float] = {}
    for part in text.split(","):
        name, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"Invalid weight {part!r}; expected source=value")
        weights[name.strip()] = float(value)
    return weights


def _read_queries(path: Path) -> list[Any]:
    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        return json.loads(text)
    return [line.strip() for line in text.splitlines() if line.strip()]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _setup_logging(settings: Any) -> None:
    """Configure logging for CLI usage."""
    from ragsearch.logging.logger import setup_logging

    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())

"""
Card Price Cache — Application Entrypoint

Configures structlog and dispatches the CLI commands.

Run via:
    python -m src.main scrape OP01
    python -m src.main scrape 09-118 --set-prefix-filter
    python -m src.main scrape-all
    python -m src.main serve
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog

from src.config import SearchUrlConvention, settings
from src.pipeline.scrape import ScrapeOptions, scrape_and_store, scrape_many
from src.storage.cache_store import CacheConfig, CacheStore
from src.utils.set_catalog import KNOWN_SEARCH_TERMS


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_scrape(
    search_term: str,
    set_prefix_filter: bool = False,
    convention: SearchUrlConvention | None = None,
) -> int:
    logger = structlog.get_logger(__name__)
    overrides: dict = {"filter_by_set_prefix": set_prefix_filter or settings.FILTER_BY_SET_PREFIX}
    if convention is not None:
        overrides["convention"] = convention
    options = ScrapeOptions.from_settings(**overrides)
    store = CacheStore(CacheConfig.from_settings())

    try:
        entry = await scrape_and_store(search_term, store, options=options)
    except Exception as e:
        logger.error(
            "scrape_failed",
            search_term=search_term,
            error=str(e),
            error_type=type(e).__name__,
        )
        return 1

    logger.info(
        "scrape_complete",
        search_term=search_term,
        count=entry.count,
        cache_file=str(store.path),
    )
    return 0


async def run_scrape_all() -> int:
    logger = structlog.get_logger(__name__)
    store = CacheStore(CacheConfig.from_settings())
    logger.info("scrape_all_start", terms=len(KNOWN_SEARCH_TERMS))

    try:
        summary = await scrape_many(KNOWN_SEARCH_TERMS, store)
    except Exception as e:
        logger.error("scrape_all_failed", error=str(e), error_type=type(e).__name__)
        return 1

    logger.info(
        "scrape_all_complete",
        succeeded=len(summary.succeeded),
        failed=summary.failed,
        blocked=summary.blocked,
    )
    return 1 if summary.blocked else 0


def run_serve(host: str | None = None, port: int | None = None) -> int:
    import uvicorn

    from src.api.server import create_app

    uvicorn.run(
        create_app(),
        host=host or settings.API_HOST,
        port=port or settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.main",
        description="Scrape yuyu-tei.jp card listings into the local cache and serve it.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape one search term.")
    scrape.add_argument("search_term", help='Search term, e.g. "OP01" or "09-118".')
    scrape.add_argument(
        "--set-prefix-filter",
        action="store_true",
        help="Keep only cards whose number starts with the searched set code.",
    )
    scrape.add_argument(
        "--convention",
        choices=[c.value for c in SearchUrlConvention],
        default=None,
        help="Search URL convention (default: SEARCH_URL_CONVENTION setting).",
    )

    subparsers.add_parser("scrape-all", help="Scrape every known search term.")

    serve = subparsers.add_parser("serve", help="Serve the cache over HTTP.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(log_level=settings.LOG_LEVEL)

    if args.command == "scrape":
        convention = SearchUrlConvention(args.convention) if args.convention else None
        return asyncio.run(run_scrape(args.search_term, args.set_prefix_filter, convention))
    if args.command == "scrape-all":
        return asyncio.run(run_scrape_all())
    return run_serve(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())

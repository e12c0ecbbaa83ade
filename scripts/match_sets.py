"""
Card Price Cache — Set Matching Script

Scrapes the set-browsing page for cached search terms and stores the items
that are already in the main cache under "<TERM>SET" in the sets cache.

Usage:
    python scripts/match_sets.py           # every cached term without a set entry
    python scripts/match_sets.py OP01      # one cached term
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import settings
from src.main import _configure_logging
from src.pipeline.match_sets import match_sets, set_key
from src.storage.cache_store import CacheConfig, CacheStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Match cached search terms against the set-browsing page.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/match_sets.py
  python scripts/match_sets.py OP01
""",
    )
    parser.add_argument(
        "search_term",
        nargs="?",
        default=None,
        help="Cached search term to match (default: all cached terms).",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    _configure_logging(log_level=settings.LOG_LEVEL)

    main_store = CacheStore(CacheConfig.from_settings())
    sets_store = CacheStore(CacheConfig.from_settings(settings.SETS_CACHE_FILE))

    if not main_store.path.exists():
        print(f"No cache found at {main_store.path}. Run a scrape first.", file=sys.stderr)
        sys.exit(1)

    try:
        summary = await match_sets(main_store, sets_store, search_term=args.search_term)
    except KeyError as e:
        print(f"Search term {e.args[0]} is not in {main_store.path}.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Set matching failed: {e}", file=sys.stderr)
        sys.exit(1)

    for term, count in summary.matched.items():
        print(f"  {set_key(term):<12} {count} matched")
    if summary.skipped:
        print(f"  skipped (already matched): {', '.join(summary.skipped)}")
    if summary.failed:
        print(f"  failed: {', '.join(summary.failed)}", file=sys.stderr)
    print(f"Sets cache: {sets_store.path}")

    if summary.blocked:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

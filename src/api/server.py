"""
Card Price Cache — Serving Interface

Read-only HTTP view of the cache for the search UI. Nothing here scrapes:
every response comes from the cache document, which is re-read per request
so a concurrent scrape run is picked up without a restart.

Routes:
    GET /api/search?search_word=OP01    exact key → normalized key → substring scan
    GET /api/cached                     cached terms with counts and timestamps
    GET /api/cached/{search_word}       exact key only
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter

from src.config import SearchUrlConvention
from src.scraper.fetcher import build_search_url
from src.storage.cache_store import CacheConfig, CacheStore, LookupResult, normalize_term

logger = structlog.get_logger(__name__)

_timestamp = TypeAdapter(datetime | None)


def _iso(value: datetime | None) -> str | None:
    return _timestamp.dump_python(value, mode="json")


def not_found_hint(search_term: str) -> str:
    return (
        f'No cached results for "{search_term}". '
        f'Run "python -m src.main scrape {search_term}" to populate the cache.'
    )


def _search_body(search_term: str, lookup: LookupResult) -> dict[str, Any]:
    return {
        "searchWord": search_term,
        "url": build_search_url(search_term, SearchUrlConvention.SEARCH_WORD),
        "count": lookup.count,
        "results": [record.to_json_dict() for record in lookup.results],
        "cached": True,
        "lastScraped": _iso(lookup.last_scraped),
    }


def _not_found(search_term: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "error": "No cached data found",
            "message": not_found_hint(search_term),
            "searchWord": search_term,
        },
    )


def _server_error(e: Exception) -> JSONResponse:
    logger.error("api_request_failed", error=str(e), error_type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to fetch data", "message": str(e)},
    )


def create_app(store: CacheStore | None = None) -> FastAPI:
    """
    Build the serving app.

    Args:
        store: Cache to serve, defaults to settings.CACHE_FILE.
    """
    store = store or CacheStore(CacheConfig.from_settings())
    app = FastAPI(title="Card Price Cache")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/api/search")
    def search(search_word: str | None = None) -> Any:
        if not search_word or not search_word.strip():
            return JSONResponse(
                status_code=400,
                content={"error": "search_word parameter is required"},
            )
        try:
            lookup = store.search(search_word)
        except Exception as e:
            return _server_error(e)

        if lookup is None:
            logger.info("api_search_miss", search_word=search_word)
            return _not_found(search_word)

        logger.info(
            "api_search_hit",
            search_word=search_word,
            exact=lookup.exact,
            count=lookup.count,
        )
        return _search_body(search_word, lookup)

    @app.get("/api/cached")
    def list_cached() -> Any:
        try:
            data = store.load()
        except Exception as e:
            return _server_error(e)
        terms = [
            {
                "searchWord": term,
                "count": entry.count,
                "lastScraped": _iso(entry.last_scraped),
            }
            for term, entry in data.items()
        ]
        return {"searchTerms": terms, "total": len(terms)}

    @app.get("/api/cached/{search_word}")
    def get_cached(search_word: str) -> Any:
        try:
            data = store.load()
            entry = data.get(search_word) or data.get(normalize_term(search_word))
        except Exception as e:
            return _server_error(e)
        if entry is None:
            return _not_found(search_word)
        return _search_body(
            search_word,
            LookupResult(
                search_term=search_word,
                results=list(entry.results),
                last_scraped=entry.last_scraped,
                exact=True,
            ),
        )

    return app

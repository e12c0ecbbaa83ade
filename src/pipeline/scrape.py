"""
Card Price Cache — Scrape Pipeline

One canonical pipeline for every page template:

    search URL → list page → dedup → batched detail pages → reconcile
               → optional set-prefix filter → cache entry

Which URL convention and which list-page markup generation to use is
configuration (ScrapeOptions), not a separate copy of the pipeline.

A HardBlockError anywhere aborts the run before the cache is touched, so the
entry for the term keeps its previous contents.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Sequence

import structlog

from src.config import FieldKind, SearchUrlConvention, SelectorGeneration, settings
from src.pipeline.batch import run_in_batches
from src.pipeline.reconcile import dedupe_candidates, filter_by_search_prefix, reconcile
from src.scraper import CardRecord
from src.scraper.detail_page import ExtractionOptions, scrape_detail_page
from src.scraper.fetcher import HardBlockError, PageFetcher, build_search_url
from src.scraper.list_page import parse_list_page
from src.storage.cache_store import CacheEntry, CacheStore
from src.utils.set_catalog import lookup_set_name

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScrapeOptions:
    """Everything that distinguishes one pipeline variant from another."""

    convention: SearchUrlConvention
    generation: SelectorGeneration
    extraction: ExtractionOptions
    batch_size: int
    inter_request_delay: float
    inter_batch_delay: float
    filter_by_set_prefix: bool
    admissible_fragments: tuple[str, ...]

    @classmethod
    def from_settings(cls, **overrides: Any) -> ScrapeOptions:
        options = cls(
            convention=settings.SEARCH_URL_CONVENTION,
            generation=settings.SELECTOR_GENERATION,
            extraction=ExtractionOptions.from_settings(),
            batch_size=settings.BATCH_SIZE,
            inter_request_delay=settings.INTER_REQUEST_DELAY_SECONDS,
            inter_batch_delay=settings.INTER_BATCH_DELAY_SECONDS,
            filter_by_set_prefix=settings.FILTER_BY_SET_PREFIX,
            admissible_fragments=tuple(settings.ADMISSIBLE_LINK_FRAGMENTS),
        )
        return replace(options, **overrides)


@dataclass
class ScrapeSummary:
    """Outcome of a multi-term run."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    blocked: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked


def _degraded_detail(candidate: CardRecord, error: Exception) -> dict[FieldKind, str]:
    logger.warning("detail_page_degraded", link=candidate.link, error=str(error))
    return {}


async def scrape_search_term(
    search_term: str,
    fetcher: PageFetcher,
    options: ScrapeOptions | None = None,
) -> list[CardRecord]:
    """
    Scrape one search term into final records.

    Args:
        search_term: Term as typed (e.g., "OP01", "09-118", "P-").
        fetcher: Open PageFetcher.
        options: Pipeline variant, defaults to settings.

    Returns:
        Final records in list-page order.

    Raises:
        HardBlockError: the site denied access to the list page or any detail page.
        FetchError: the list page itself could not be fetched.
    """
    options = options or ScrapeOptions.from_settings()
    url = build_search_url(search_term, options.convention, origin=options.extraction.origin)
    logger.info(
        "scrape_term_start",
        search_term=search_term,
        url=url,
        convention=options.convention.value,
        generation=options.generation.value,
    )

    html = await fetcher.fetch(url)
    candidates = parse_list_page(
        html,
        generation=options.generation,
        options=options.extraction,
        admissible_fragments=options.admissible_fragments,
    )
    unique = dedupe_candidates(candidates)

    set_name = lookup_set_name(search_term)
    if set_name:
        unique = [candidate.model_copy(update={"set_name": set_name}) for candidate in unique]

    logger.info("scrape_term_candidates", search_term=search_term, unique=len(unique))

    async def _fetch_detail(candidate: CardRecord) -> dict[FieldKind, str]:
        return await scrape_detail_page(fetcher, candidate.link, options.extraction)

    details = await run_in_batches(
        unique,
        _fetch_detail,
        batch_size=options.batch_size,
        inter_request_delay=options.inter_request_delay,
        inter_batch_delay=options.inter_batch_delay,
        fallback=_degraded_detail,
    )

    records = reconcile(
        unique,
        {candidate.link: detail for candidate, detail in zip(unique, details)},
        scraped_at=datetime.now(timezone.utc),
        sentinel=options.extraction.card_number_sentinel,
    )
    if options.filter_by_set_prefix:
        records = filter_by_search_prefix(records, search_term)

    logger.info("scrape_term_complete", search_term=search_term, count=len(records))
    return records


async def scrape_and_store(
    search_term: str,
    store: CacheStore,
    fetcher: PageFetcher | None = None,
    options: ScrapeOptions | None = None,
) -> CacheEntry:
    """
    Scrape a term and replace its cache entry.

    The cache is written only after the whole scrape succeeded.
    """
    if fetcher is None:
        async with PageFetcher() as own_fetcher:
            records = await scrape_search_term(search_term, own_fetcher, options)
    else:
        records = await scrape_search_term(search_term, fetcher, options)
    return store.put(search_term, records)


async def pause_between(min_seconds: float, max_seconds: float) -> None:
    """Randomized pause between search terms."""
    if max_seconds <= 0:
        return
    delay = random.uniform(min_seconds, max_seconds)
    logger.info("pause_between_terms", delay_seconds=round(delay, 1))
    await asyncio.sleep(delay)


async def scrape_many(
    search_terms: Sequence[str],
    store: CacheStore,
    options: ScrapeOptions | None = None,
    delay_min: float | None = None,
    delay_max: float | None = None,
    fetcher: PageFetcher | None = None,
) -> ScrapeSummary:
    """
    Scrape several terms in sequence.

    A failing term is logged and skipped. A hard block stops the run: every
    remaining term would hit the same block.
    """
    delay_min = settings.SCRAPE_ALL_DELAY_MIN_SECONDS if delay_min is None else delay_min
    delay_max = settings.SCRAPE_ALL_DELAY_MAX_SECONDS if delay_max is None else delay_max
    summary = ScrapeSummary()

    async def _run(active: PageFetcher) -> None:
        for index, term in enumerate(search_terms, start=1):
            logger.info("scrape_many_progress", term=term, position=index, total=len(search_terms))
            try:
                entry = await scrape_and_store(term, store, active, options)
                summary.succeeded.append(term)
                logger.info("scrape_many_term_done", term=term, count=entry.count)
            except HardBlockError as e:
                summary.failed.append(term)
                summary.blocked = True
                logger.error("scrape_many_blocked", term=term, error=str(e))
                return
            except Exception as e:
                summary.failed.append(term)
                logger.error(
                    "scrape_many_term_failed",
                    term=term,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            if index < len(search_terms):
                await pause_between(delay_min, delay_max)

    if fetcher is None:
        async with PageFetcher() as own_fetcher:
            await _run(own_fetcher)
    else:
        await _run(fetcher)

    logger.info(
        "scrape_many_complete",
        succeeded=len(summary.succeeded),
        failed=len(summary.failed),
        blocked=summary.blocked,
    )
    return summary

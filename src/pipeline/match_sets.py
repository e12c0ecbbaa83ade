"""
Card Price Cache — Set Matching

Re-scrapes cached terms through the set-browsing page template
(``vers[]`` query, ``.card-product`` markup) and keeps only the items that
are already known to the main cache, matched by normalized link.

Matches go to a separate sets cache under ``<TERM>SET``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

import structlog

from src.config import SearchUrlConvention, SelectorGeneration, settings
from src.pipeline.reconcile import normalize_link
from src.pipeline.scrape import ScrapeOptions, pause_between, scrape_search_term
from src.scraper import CardRecord
from src.scraper.fetcher import HardBlockError, PageFetcher
from src.storage.cache_store import CacheEntry, CacheStore, normalize_term

logger = structlog.get_logger(__name__)

SET_KEY_SUFFIX = "SET"


def set_key(search_term: str) -> str:
    return f"{normalize_term(search_term)}{SET_KEY_SUFFIX}"


def set_options(base: ScrapeOptions | None = None) -> ScrapeOptions:
    """Pipeline variant for the set-browsing template."""
    base = base or ScrapeOptions.from_settings()
    return replace(
        base,
        convention=SearchUrlConvention.VERS,
        generation=SelectorGeneration.CARD_PRODUCT,
        batch_size=settings.SETS_BATCH_SIZE,
        filter_by_set_prefix=False,
    )


def known_links(entries: Iterable[CacheEntry]) -> set[str]:
    """Normalized links of every record in the given cache entries."""
    return {
        normalize_link(record.link)
        for entry in entries
        for record in entry.results
        if record.link
    }


def match_by_link(
    records: Iterable[CardRecord],
    links: set[str],
    sentinel: str | None = None,
) -> list[CardRecord]:
    """Records whose link is already cached and that carry a real card number."""
    sentinel = sentinel if sentinel is not None else settings.CARD_NUMBER_SENTINEL
    return [
        record
        for record in records
        if normalize_link(record.link) in links
        and record.card_number
        and record.card_number != sentinel
    ]


@dataclass
class MatchSummary:
    matched: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    blocked: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked


async def match_set(
    search_term: str,
    main_store: CacheStore,
    sets_store: CacheStore,
    fetcher: PageFetcher,
    options: ScrapeOptions | None = None,
) -> CacheEntry | None:
    """
    Match one term. Returns the stored entry, or None when nothing matched.

    Nothing is written when there are no matches.
    """
    options = set_options(options)
    links = known_links(main_store.load().values())
    logger.info("match_set_start", search_term=search_term, known_links=len(links))

    records = await scrape_search_term(search_term, fetcher, options)
    matched = match_by_link(records, links, options.extraction.card_number_sentinel)
    logger.info(
        "match_set_results",
        search_term=search_term,
        scraped=len(records),
        matched=len(matched),
    )

    if not matched:
        if records:
            logger.warning(
                "match_set_no_link_overlap",
                search_term=search_term,
                sample_link=records[0].link,
            )
        return None
    return sets_store.put(set_key(search_term), matched)


async def match_sets(
    main_store: CacheStore,
    sets_store: CacheStore,
    search_term: str | None = None,
    options: ScrapeOptions | None = None,
    delay_min: float | None = None,
    delay_max: float | None = None,
    fetcher: PageFetcher | None = None,
) -> MatchSummary:
    """
    Match one term, or every term in the main cache.

    A single term must already be cached. In the all-terms run, terms whose
    set key already exists are skipped.

    Raises:
        KeyError: ``search_term`` is not in the main cache.
    """
    delay_min = settings.MATCH_SETS_DELAY_MIN_SECONDS if delay_min is None else delay_min
    delay_max = settings.MATCH_SETS_DELAY_MAX_SECONDS if delay_max is None else delay_max
    cached_terms = list(main_store.load().keys())
    summary = MatchSummary()

    if search_term is not None:
        term = normalize_term(search_term)
        if term not in cached_terms:
            raise KeyError(term)
        terms = [term]
    else:
        existing = sets_store.load()
        terms = []
        for term in cached_terms:
            if set_key(term) in existing:
                summary.skipped.append(term)
            else:
                terms.append(term)
        logger.info("match_sets_plan", to_process=len(terms), skipped=len(summary.skipped))

    async def _run(active: PageFetcher) -> None:
        for index, term in enumerate(terms, start=1):
            try:
                entry = await match_set(term, main_store, sets_store, active, options)
                summary.matched[term] = entry.count if entry else 0
            except HardBlockError as e:
                summary.failed.append(term)
                summary.blocked = True
                logger.error("match_sets_blocked", term=term, error=str(e))
                return
            except Exception as e:
                summary.failed.append(term)
                logger.error(
                    "match_sets_term_failed",
                    term=term,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            if index < len(terms):
                await pause_between(delay_min, delay_max)

    if fetcher is None:
        async with PageFetcher() as own_fetcher:
            await _run(own_fetcher)
    else:
        await _run(fetcher)

    logger.info(
        "match_sets_complete",
        matched_terms=sum(1 for count in summary.matched.values() if count),
        failed=len(summary.failed),
        skipped=len(summary.skipped),
    )
    return summary

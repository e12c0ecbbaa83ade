"""
Card Price Cache — Merge & Dedup Engine

Folds detail-page extractions back into list-page candidates.

Precedence per field:
- name, price, image, color, rarity: detail value when non-empty, else list value.
- link: always the list value (the URL actually fetched; redirects may differ).
- card_number: validated detail number > validated list number > sentinel.
- set_name: carried from the candidate (assigned by the caller, never scraped).
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Sequence

import structlog

from src.config import FieldKind, settings
from src.scraper import CardRecord
from src.scraper import patterns

logger = structlog.get_logger(__name__)

DetailFields = Mapping[FieldKind, str]

_DETAIL_OVERRIDABLE: dict[str, FieldKind] = {
    "name": FieldKind.NAME,
    "price": FieldKind.PRICE,
    "image": FieldKind.IMAGE,
    "color": FieldKind.COLOR,
    "rarity": FieldKind.RARITY,
}


def normalize_link(link: str | None) -> str:
    """Dedup key for a link: trimmed, trailing slash dropped, case-folded."""
    if not link:
        return ""
    normalized = link.strip()
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized.casefold()


def dedupe_candidates(candidates: Iterable[CardRecord]) -> list[CardRecord]:
    """
    Keep the first candidate per normalized link, in order of first appearance.

    Candidates without a link are dropped; they cannot be fetched or keyed.
    """
    seen: set[str] = set()
    unique: list[CardRecord] = []
    for candidate in candidates:
        key = normalize_link(candidate.link)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def resolve_card_number(
    detail_number: str | None,
    list_number: str | None,
    sentinel: str,
) -> str:
    """Three-way precedence: validated detail > validated list > sentinel."""
    for candidate in (detail_number, list_number):
        number = patterns.match_card_number(candidate)
        if number:
            return number
    return sentinel


def merge_record(
    candidate: CardRecord,
    detail: DetailFields | None,
    scraped_at: datetime | None = None,
    sentinel: str | None = None,
) -> CardRecord:
    """
    Build the final record for one candidate.

    Returns a new CardRecord; neither input is modified.
    """
    detail = detail or {}
    sentinel = sentinel if sentinel is not None else settings.CARD_NUMBER_SENTINEL

    values: dict[str, object] = {}
    for attribute, field in _DETAIL_OVERRIDABLE.items():
        detail_value = detail.get(field)
        values[attribute] = detail_value if detail_value else getattr(candidate, attribute)

    return CardRecord(
        name=values["name"],
        card_number=resolve_card_number(
            detail.get(FieldKind.CARD_NUMBER), candidate.card_number, sentinel
        ),
        price=values["price"],
        image=values["image"],
        link=candidate.link,
        color=values["color"],
        rarity=values["rarity"],
        set_name=candidate.set_name,
        scraped_at=scraped_at,
    )


def reconcile(
    candidates: Sequence[CardRecord],
    detail_results: Mapping[str, DetailFields],
    scraped_at: datetime | None = None,
    sentinel: str | None = None,
) -> list[CardRecord]:
    """
    Deduplicate candidates and merge detail-page data into each.

    Args:
        candidates: List-page candidates in page order.
        detail_results: Detail extractions keyed by link (any casing/trailing slash).
        scraped_at: Finalization timestamp stamped on every record.
        sentinel: Card-number sentinel, defaults to settings.CARD_NUMBER_SENTINEL.

    Returns:
        One final record per distinct link, in order of first appearance.
    """
    details_by_key = {normalize_link(link): fields for link, fields in detail_results.items()}
    unique = dedupe_candidates(candidates)
    merged = [
        merge_record(
            candidate,
            details_by_key.get(normalize_link(candidate.link)),
            scraped_at=scraped_at,
            sentinel=sentinel,
        )
        for candidate in unique
    ]
    logger.info(
        "reconcile_complete",
        candidates=len(candidates),
        duplicates_dropped=len(candidates) - len(unique),
        with_detail=sum(1 for c in unique if details_by_key.get(normalize_link(c.link))),
    )
    return merged


def matches_search_term(card_number: str | None, search_term: str) -> bool:
    """
    Whether a card number belongs to the set implied by the search term.

    A bare set prefix ("OP01") must be a prefix of the card number, so "OP01"
    never pulls in "OP13-001". Any other term ("OP01-120", "P-") is matched as
    a substring.
    """
    if not card_number:
        return False
    number = card_number.strip().upper()
    normalized = search_term.strip().upper()
    prefix = patterns.search_set_prefix(normalized) or normalized

    if len(prefix) >= 3 and patterns.is_set_prefix(prefix):
        return number.startswith(prefix)
    return normalized in number


def filter_by_search_prefix(records: Iterable[CardRecord], search_term: str) -> list[CardRecord]:
    """Drop records whose card number does not belong to the searched set."""
    records = list(records)
    kept = [record for record in records if matches_search_term(record.card_number, search_term)]
    logger.info(
        "set_prefix_filter_applied",
        search_term=search_term,
        kept=len(kept),
        removed=len(records) - len(kept),
    )
    return kept

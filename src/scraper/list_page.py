"""
Card Price Cache — List-Page Parser

Enumerates card candidates on a search-results page.

The container selectors form a priority cascade: the first selector that
yields at least one candidate wins and later selectors are not tried. Only
lightweight fields are read here (no colour, no full extractor chain); the
detail page fills in the rest.
"""

from __future__ import annotations

import structlog
from bs4 import BeautifulSoup, Tag

from src.config import SelectorGeneration, settings
from src.scraper import CardRecord, patterns
from src.scraper.detail_page import (
    CARD_NUMBER_BADGE_SELECTORS,
    PRICE_SELECTOR,
    ExtractionOptions,
    element_text,
    image_source,
    load_document,
    normalize_image_url,
)

logger = structlog.get_logger(__name__)

CARD_CONTAINER_SELECTORS = (
    'li[class*="card"]',
    'div[class*="card"]',
    ".item-card",
    ".product-item",
    "li.item",
    "div.item",
    '[class*="list-item"]',
    "[data-product-id]",
    "article",
    "section > div",
)
CARD_PRODUCT_SELECTOR = ".card-product"
CAROUSEL_SELECTOR = "#newestCardList, #recommendedItemList"
LIST_NAME_SELECTOR = '.name, .title, h2, h3, h4, [class*="name"], [class*="title"]'
FALLBACK_CONTAINER_TAGS = ("li", "div", "article", "section", "td")


def _in_scope(element: Tag, generation: SelectorGeneration) -> bool:
    """Whether an element belongs to the main result grid for this page generation."""
    if generation != SelectorGeneration.CARD_PRODUCT:
        return True
    if element.css.closest(CARD_PRODUCT_SELECTOR) is None:
        return False
    # carousel/recommendation rows repeat cards from other sets
    return element.css.closest(CAROUSEL_SELECTOR) is None


def _inline_card_number(element: Tag) -> str | None:
    for selector in CARD_NUMBER_BADGE_SELECTORS:
        badge = element.select_one(selector)
        if badge is not None:
            number = patterns.match_loose_card_number(badge.get_text(" "))
            if number:
                return number
    return patterns.match_loose_card_number(element.get_text(" "))


def _inline_price(element: Tag, price_floor: int) -> str | None:
    price_element = element.select_one(PRICE_SELECTOR)
    texts = [price_element.get_text(" ")] if price_element is not None else []
    texts.append(element.get_text(" "))
    for text in texts:
        price = patterns.find_price(text, price_floor) or patterns.find_prefixed_price(text, price_floor)
        if price:
            return price
    return None


def _inline_name(element: Tag) -> str | None:
    name_element = element.select_one(LIST_NAME_SELECTOR)
    name = element_text(name_element) if name_element is not None else ""
    if not name:
        anchor = element.find("a")
        name = element_text(anchor) if anchor is not None else ""
    return patterns.clean_name(name)


def _candidate_from_element(
    element: Tag,
    options: ExtractionOptions,
    img: Tag | None = None,
) -> CardRecord | None:
    img = img if img is not None else element.find("img")
    src = image_source(img) if img is not None else None
    image = normalize_image_url(src, options) if src else None
    name = _inline_name(element)

    # not a reportable item
    if not image and not name:
        return None

    anchor = element.find("a", href=True)
    alt = img.get("alt") if img is not None else None

    return CardRecord(
        name=name,
        card_number=_inline_card_number(element),
        price=_inline_price(element, options.price_floor),
        image=image,
        link=patterns.absolutize_url(anchor["href"], options.origin) if anchor is not None else None,
        rarity=patterns.parse_rarity(alt if isinstance(alt, str) else None),
    )


def _parse_with_cascade(
    soup: BeautifulSoup,
    generation: SelectorGeneration,
    options: ExtractionOptions,
) -> list[CardRecord]:
    for selector in CARD_CONTAINER_SELECTORS:
        candidates: list[CardRecord] = []
        for element in soup.select(selector):
            if not _in_scope(element, generation):
                continue
            candidate = _candidate_from_element(element, options)
            if candidate is not None:
                candidates.append(candidate)
        if candidates:
            logger.debug("list_page_selector_matched", selector=selector, candidates=len(candidates))
            return candidates
    return []


def _nearest_container(img: Tag) -> Tag | None:
    for parent in img.parents:
        if not isinstance(parent, Tag) or parent.name in ("body", "html", "[document]"):
            return None
        if parent.name in FALLBACK_CONTAINER_TAGS and parent.find("a", href=True) is not None:
            return parent
    return None


def _parse_with_image_fallback(
    soup: BeautifulSoup,
    generation: SelectorGeneration,
    options: ExtractionOptions,
) -> list[CardRecord]:
    candidates: list[CardRecord] = []
    seen: set[int] = set()
    for img in soup.find_all("img"):
        src = image_source(img)
        if not src:
            continue
        alt = img.get("alt") if isinstance(img.get("alt"), str) else ""
        if "card" not in src and not patterns.match_card_number(alt):
            continue
        container = _nearest_container(img)
        if container is None or id(container) in seen or not _in_scope(container, generation):
            continue
        seen.add(id(container))
        candidate = _candidate_from_element(container, options, img=img)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def is_admissible(record: CardRecord, fragments: list[str] | tuple[str, ...]) -> bool:
    """True when the record links to a genuine item page."""
    link = (record.link or "").strip()
    return bool(link) and any(fragment in link for fragment in fragments)


def parse_list_page(
    html: str,
    generation: SelectorGeneration | None = None,
    options: ExtractionOptions | None = None,
    admissible_fragments: list[str] | tuple[str, ...] | None = None,
) -> list[CardRecord]:
    """
    Extract admissible card candidates from a search-results page.

    Args:
        html: Search-results page HTML.
        generation: Page markup generation, defaults to settings.SELECTOR_GENERATION.
        options: Extraction tunables, defaults to settings.
        admissible_fragments: URL-path fragments identifying item pages.

    Returns:
        Candidates in page order. Duplicates are kept; see pipeline.reconcile.
    """
    generation = generation or settings.SELECTOR_GENERATION
    options = options or ExtractionOptions.from_settings()
    fragments = admissible_fragments if admissible_fragments is not None else settings.ADMISSIBLE_LINK_FRAGMENTS

    soup = load_document(html)
    candidates = _parse_with_cascade(soup, generation, options)
    if not candidates:
        logger.info("list_page_cascade_empty", generation=generation.value)
        candidates = _parse_with_image_fallback(soup, generation, options)

    admissible = [candidate for candidate in candidates if is_admissible(candidate, fragments)]
    logger.info(
        "list_page_parsed",
        generation=generation.value,
        candidates=len(candidates),
        admissible=len(admissible),
    )
    return admissible

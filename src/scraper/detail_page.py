"""
Card Price Cache — Detail-Page Field Extractor

Turns one item page into field values. Every field has an ordered list of
strategies (specific selector → generic selector → regex over page text);
the first strategy returning a non-empty, valid value wins.

Extraction never raises for a missing field: a miss is simply an absent key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

import structlog
from bs4 import BeautifulSoup, Tag

from src.config import FieldKind, settings
from src.scraper import patterns
from src.scraper.fetcher import FetchError, HardBlockError, PageFetcher
from src.utils.color_map import COLOR_LABEL, is_color_token

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExtractionOptions:
    """Tunables shared by the detail-page extractor and the list-page parser."""

    origin: str
    price_floor: int
    card_number_sentinel: str
    rewrite_thumbnails: bool = False
    thumbnail_segment: str = ""
    full_size_segment: str = ""

    @classmethod
    def from_settings(cls) -> ExtractionOptions:
        return cls(
            origin=settings.SITE_ORIGIN,
            price_floor=settings.PRICE_FLOOR,
            card_number_sentinel=settings.CARD_NUMBER_SENTINEL,
            rewrite_thumbnails=settings.REWRITE_THUMBNAILS,
            thumbnail_segment=settings.THUMBNAIL_SEGMENT,
            full_size_segment=settings.FULL_SIZE_SEGMENT,
        )


Strategy = Callable[[BeautifulSoup, ExtractionOptions], "str | None"]

# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

IMAGE_SELECTORS = (
    'img[src*="card"]',
    'img[class*="card"]',
    'img[alt*="OP"]',
    ".card-image img",
    ".product-image img",
)
IMAGE_SOURCE_ATTRIBUTES = ("src", "data-src", "data-lazy-src")
PRICE_SELECTOR = '.price, [class*="price"], [class*="cost"], [class*="yen"]'
NAME_ANCHOR_SELECTORS = ("#power.power h3", "#power h3", ".power h3")
NAME_HEADING_SELECTOR = 'h1, h2, h3, [class*="product-name"], [class*="title"], [class*="name"]'
CARD_NUMBER_BADGE_SELECTORS = (
    '.pote, [class*="pote"]',
    '.code, .number, [class*="code"], [class*="number"]',
)
PRODUCT_SECTION_SELECTOR = '.product-detail, [class*="product"], [class*="detail"]'
RARITY_BADGE_SELECTOR = '.rare, [class*="rarity"], [class*="rare"]'
TABLE_CELL_SELECTOR = "tr, td, th"

# Label cells longer than this are prose, not a table row
MAX_TABLE_TEXT_LENGTH = 100
MAX_HEADING_NAME_LENGTH = 120

_NOISE_TAGS = ("script", "style", "noscript", "template")


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------

def load_document(html: str) -> BeautifulSoup:
    """Parse HTML and drop script/style content so page text is visible text only."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_NOISE_TAGS):
        tag.decompose()
    return soup


def page_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return root.get_text(" ")


def element_text(element: Tag) -> str:
    return patterns.normalize_whitespace(element.get_text(" "))


def image_source(img: Tag) -> str | None:
    """src, falling back to the lazy-load attributes."""
    for attribute in IMAGE_SOURCE_ATTRIBUTES:
        value = img.get(attribute)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_image_url(src: str, options: ExtractionOptions) -> str | None:
    url = patterns.absolutize_url(src, options.origin)
    if url and options.rewrite_thumbnails:
        url = patterns.rewrite_thumbnail(url, options.thumbnail_segment, options.full_size_segment)
    return url


# ---------------------------------------------------------------------------
# Image
# ---------------------------------------------------------------------------

def _image_strategy(selector: str) -> Strategy:
    def strategy(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
        img = soup.select_one(selector)
        if img is None:
            return None
        src = image_source(img)
        return normalize_image_url(src, options) if src else None

    strategy.__name__ = f"image[{selector}]"
    return strategy


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------

def _price_from_price_elements(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for element in soup.select(PRICE_SELECTOR):
        text = element.get_text(" ")
        if patterns.CURRENCY_MARKER not in text:
            continue
        price = patterns.find_price(text, options.price_floor)
        if price:
            return price
    return None


def _price_from_marker_lines(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    seen: set[int] = set()
    for node in soup.find_all(string=re.compile(patterns.CURRENCY_MARKER)):
        parent = node.parent
        if parent is None or id(parent) in seen:
            continue
        seen.add(id(parent))
        for line in parent.get_text("\n").splitlines():
            match = patterns.PRICE_RE.search(line)
            if match and patterns.clears_floor(match.group(0), options.price_floor):
                return re.sub(r"\s+", "", match.group(0))
    return None


def _price_from_page_text(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    return patterns.find_price(page_text(soup), options.price_floor)


# ---------------------------------------------------------------------------
# Name
# ---------------------------------------------------------------------------

def _name_from_anchor(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for selector in NAME_ANCHOR_SELECTORS:
        heading = soup.select_one(selector)
        if heading is not None:
            name = patterns.clean_name(element_text(heading))
            if name:
                return name
    return None


def _name_from_headings(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for element in soup.select(NAME_HEADING_SELECTOR):
        text = element_text(element)
        if len(text) <= MAX_HEADING_NAME_LENGTH and patterns.contains_japanese(text):
            return patterns.clean_name(text)
    return None


def _name_from_metadata(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    candidates: list[str] = []
    meta = soup.find("meta", attrs={"property": "og:title"})
    if meta is not None and isinstance(meta.get("content"), str):
        candidates.append(meta["content"])
    if soup.title is not None and soup.title.string:
        candidates.append(soup.title.string)

    for candidate in candidates:
        # "ロロノア・ゾロ | 遊々亭" → site suffix dropped
        title = re.split(r"\s[|｜]\s|\s-\s", candidate)[0]
        if patterns.contains_japanese(title):
            return patterns.clean_name(title)
    return None


def _name_from_page_text(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    return patterns.clean_name(patterns.extract_name_from_text(page_text(soup)))


# ---------------------------------------------------------------------------
# Card number
# ---------------------------------------------------------------------------

def _card_number_from_badge(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for selector in CARD_NUMBER_BADGE_SELECTORS:
        badge = soup.select_one(selector)
        if badge is not None:
            number = patterns.match_card_number(badge.get_text(" "))
            if number:
                return number
    return None


def _card_number_from_product_section(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    section = soup.select_one(PRODUCT_SECTION_SELECTOR)
    if section is None:
        return None
    return patterns.match_card_number(section.get_text(" "))


def _card_number_from_page_text(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    return patterns.match_card_number(page_text(soup))


def _card_number_sentinel(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    return options.card_number_sentinel


# ---------------------------------------------------------------------------
# Color
# ---------------------------------------------------------------------------

_COLOR_INLINE_PATTERNS = (
    re.compile(rf"{COLOR_LABEL}[：:]\s*(\S+)"),
    re.compile(rf"{COLOR_LABEL}\s+(\S+)"),
)


def _color_from_table(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for element in soup.select(TABLE_CELL_SELECTOR):
        text = element.get_text(" ").strip()
        if COLOR_LABEL not in text or len(text) >= MAX_TABLE_TEXT_LENGTH:
            continue

        inline = None
        for pattern in _COLOR_INLINE_PATTERNS:
            inline = pattern.search(text)
            if inline:
                break

        if inline:
            value = inline.group(1).strip()
            if is_color_token(value):
                return value
            continue

        # "<th>色</th><td>赤</td>"
        sibling = element.find_next_sibling(["td", "th"])
        if sibling is not None:
            value = sibling.get_text(" ").strip()
            if is_color_token(value):
                return value
    return None


# ---------------------------------------------------------------------------
# Rarity
# ---------------------------------------------------------------------------

def _rarity_from_image_alt(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    for selector in IMAGE_SELECTORS:
        img = soup.select_one(selector)
        if img is None:
            continue
        alt = img.get("alt")
        rarity = patterns.parse_rarity(alt if isinstance(alt, str) else None)
        if rarity:
            return rarity
    return None


def _rarity_from_badge(soup: BeautifulSoup, options: ExtractionOptions) -> str | None:
    badge = soup.select_one(RARITY_BADGE_SELECTOR)
    if badge is None:
        return None
    rarity = patterns.parse_rarity(badge.get_text(" "))
    return rarity if patterns.is_known_rarity(rarity) else None


# ---------------------------------------------------------------------------
# Strategy table
# ---------------------------------------------------------------------------

FIELD_STRATEGIES: dict[FieldKind, tuple[Strategy, ...]] = {
    FieldKind.IMAGE: tuple(_image_strategy(selector) for selector in IMAGE_SELECTORS),
    FieldKind.PRICE: (
        _price_from_price_elements,
        _price_from_marker_lines,
        _price_from_page_text,
    ),
    FieldKind.NAME: (
        _name_from_anchor,
        _name_from_headings,
        _name_from_metadata,
        _name_from_page_text,
    ),
    FieldKind.CARD_NUMBER: (
        _card_number_from_badge,
        _card_number_from_product_section,
        _card_number_from_page_text,
        _card_number_sentinel,
    ),
    FieldKind.COLOR: (_color_from_table,),
    FieldKind.RARITY: (_rarity_from_image_alt, _rarity_from_badge),
}


def extract(
    soup: BeautifulSoup,
    field: FieldKind,
    options: ExtractionOptions | None = None,
) -> str | None:
    """
    Best-guess value for one field of a detail page.

    Args:
        soup: Parsed detail page (see load_document).
        field: Which field to extract.
        options: Extraction tunables, defaults to settings.

    Returns:
        The first non-empty strategy result, or None on a miss.
    """
    options = options or ExtractionOptions.from_settings()
    for strategy in FIELD_STRATEGIES[field]:
        value = strategy(soup, options)
        if value:
            logger.debug("extract_field_hit", field=field.value, strategy=strategy.__name__)
            return value
    logger.debug("extract_field_miss", field=field.value)
    return None


def extract_detail_fields(
    html: str,
    options: ExtractionOptions | None = None,
) -> dict[FieldKind, str]:
    """Run every field extractor over a detail page. Misses are omitted."""
    options = options or ExtractionOptions.from_settings()
    soup = load_document(html)
    fields: dict[FieldKind, str] = {}
    for field in FieldKind:
        value = extract(soup, field, options)
        if value:
            fields[field] = value
    return fields


async def scrape_detail_page(
    fetcher: PageFetcher,
    link: str,
    options: ExtractionOptions | None = None,
) -> dict[FieldKind, str]:
    """
    Fetch and extract one detail page.

    A fetch failure yields an empty field set; a hard block propagates.
    """
    try:
        html = await fetcher.fetch(link)
    except HardBlockError:
        raise
    except FetchError as e:
        logger.warning(
            "detail_page_fetch_failed",
            link=link,
            status_code=e.status_code,
            error=str(e),
        )
        return {}

    fields = extract_detail_fields(html, options)
    logger.debug("detail_page_extracted", link=link, fields=sorted(f.value for f in fields))
    return fields

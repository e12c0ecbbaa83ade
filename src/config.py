"""
Card Price Cache — Configuration & Constants

Every URL, delay, threshold and file path used by the scrape pipeline lives
here. No hardcoded values in extraction or pipeline logic.

Usage:
    from src.config import settings
"""

from __future__ import annotations

from enum import Enum

from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SearchUrlConvention(str, Enum):
    """Query-parameter convention of the search endpoint.

    The two conventions address different page templates on the same site
    and are not interchangeable.
    """
    SEARCH_WORD = "search_word"   # ?search_word=OP01
    VERS = "vers"                 # ?search_word=&vers[]=OP01&rare=&type=&kizu=0


class SelectorGeneration(str, Enum):
    """Which generation of list-page markup the parser expects."""
    LEGACY = "legacy"              # any element matching the card cascade
    CARD_PRODUCT = "card_product"  # only inside .card-product, carousels excluded


class FieldKind(str, Enum):
    """Fields the detail-page extractor knows how to recover."""
    IMAGE = "image"
    PRICE = "price"
    NAME = "name"
    CARD_NUMBER = "card_number"
    COLOR = "color"
    RARITY = "rarity"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for the card price cache.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # Target site
    # -----------------------------------------------------------------------
    SITE_ORIGIN: str = "https://yuyu-tei.jp"
    SEARCH_PATH: str = "/sell/opc/s/search"
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    ACCEPT_LANGUAGE: str = "ja,en-US;q=0.9,en;q=0.8"
    REFERER: str = "https://yuyu-tei.jp/"

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_REDIRECTS: int = 5
    FETCH_JITTER_MIN_SECONDS: float = 0.5
    FETCH_JITTER_MAX_SECONDS: float = 1.5
    HARD_BLOCK_STATUS_CODES: list[int] = [403]

    # -----------------------------------------------------------------------
    # Batching (detail pages are fetched in fixed-size batches)
    # -----------------------------------------------------------------------
    BATCH_SIZE: int = 15
    SETS_BATCH_SIZE: int = 10
    INTER_REQUEST_DELAY_SECONDS: float = 0.2
    INTER_BATCH_DELAY_SECONDS: float = 1.0
    SCRAPE_ALL_DELAY_MIN_SECONDS: float = 5.0
    SCRAPE_ALL_DELAY_MAX_SECONDS: float = 8.0
    MATCH_SETS_DELAY_MIN_SECONDS: float = 3.0
    MATCH_SETS_DELAY_MAX_SECONDS: float = 5.0

    # -----------------------------------------------------------------------
    # Extraction
    # -----------------------------------------------------------------------
    PRICE_FLOOR: int = 10                   # yen; smaller matches are shipping/points noise
    CARD_NUMBER_SENTINEL: str = "-"         # page has no identifier (promo goods)
    ADMISSIBLE_LINK_FRAGMENTS: list[str] = ["opc/card", "/promo"]
    REWRITE_THUMBNAILS: bool = False
    THUMBNAIL_SEGMENT: str = "/100_140/"
    FULL_SIZE_SEGMENT: str = "/front/"

    # -----------------------------------------------------------------------
    # Pipeline variant
    # -----------------------------------------------------------------------
    SEARCH_URL_CONVENTION: SearchUrlConvention = SearchUrlConvention.SEARCH_WORD
    SELECTOR_GENERATION: SelectorGeneration = SelectorGeneration.LEGACY
    FILTER_BY_SET_PREFIX: bool = False

    # -----------------------------------------------------------------------
    # Storage
    # -----------------------------------------------------------------------
    CACHE_FILE: str = "data/scraped-data.json"
    SETS_CACHE_FILE: str = "data/sets-data.json"
    CACHE_CREATE_DIRS: bool = True

    # -----------------------------------------------------------------------
    # Serving
    # -----------------------------------------------------------------------
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3001
    LOG_LEVEL: str = "INFO"


# Singleton instance
settings = Settings()

"""
Card Price Cache — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- HTML page fixtures (tests/fixtures/*.html)
- Temp-dir cache stores
- Zero-delay pipeline options
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from src.config import SearchUrlConvention, SelectorGeneration
from src.pipeline.scrape import ScrapeOptions
from src.scraper import CardRecord
from src.scraper.detail_page import ExtractionOptions
from src.storage.cache_store import CacheConfig, CacheStore


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

ORIGIN = "https://yuyu-tei.jp"
SEARCH_BASE = f"{ORIGIN}/sell/opc/s/search"
LUFFY_LINK = f"{ORIGIN}/sell/opc/card/op01/10001"
ZORO_LINK = f"{ORIGIN}/sell/opc/card/op01/10025"
DON_LINK = f"{ORIGIN}/sell/opc/card/don/20001"
ROOM_LINK = f"{ORIGIN}/sell/opc/card/op01/30001"


def read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Fixture Loaders
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def load_html() -> Callable[[str], str]:
    """Load an HTML page from tests/fixtures/."""
    return read_fixture


@pytest.fixture
def extraction_options() -> ExtractionOptions:
    return ExtractionOptions(origin=ORIGIN, price_floor=10, card_number_sentinel="-")


@pytest.fixture
def scrape_options(extraction_options: ExtractionOptions) -> ScrapeOptions:
    """Pipeline pinned to the search_word / legacy variant, every delay switched off."""
    return ScrapeOptions.from_settings(
        convention=SearchUrlConvention.SEARCH_WORD,
        generation=SelectorGeneration.LEGACY,
        extraction=extraction_options,
        batch_size=15,
        admissible_fragments=("opc/card", "/promo"),
        inter_request_delay=0.0,
        inter_batch_delay=0.0,
        filter_by_set_prefix=False,
    )


# ---------------------------------------------------------------------------
# Cache Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_store(tmp_path: Path) -> CacheStore:
    """Cache store backed by a fresh temp directory."""
    return CacheStore(CacheConfig(path=tmp_path / "data" / "scraped-data.json"))


@pytest.fixture
def sets_store(tmp_path: Path) -> CacheStore:
    return CacheStore(CacheConfig(path=tmp_path / "data" / "sets-data.json"))


@pytest.fixture
def sample_records() -> list[CardRecord]:
    return [
        CardRecord(
            name="モンキー・D・ルフィ",
            card_number="OP01-001",
            price="2,480円",
            image=f"{ORIGIN}/images/card/front/op01-001.jpg",
            link=LUFFY_LINK,
            color="赤",
            rarity="L",
            set_name="ROMANCE DAWN",
        ),
        CardRecord(
            name="ロロノア・ゾロ",
            card_number="OP01-025",
            price="1,200円",
            link=ZORO_LINK,
            rarity="SR",
            set_name="ROMANCE DAWN",
        ),
    ]


# ---------------------------------------------------------------------------
# Utility Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """Current timestamp for tests."""
    return datetime.now(timezone.utc)

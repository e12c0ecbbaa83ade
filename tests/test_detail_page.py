"""
Card Price Cache — Detail-Page Field Extractor Tests

Each field's strategy chain: the first hit wins, later strategies only run on
a miss, and a miss is an absent key rather than an error.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from src.config import FieldKind
from src.scraper.detail_page import (
    ExtractionOptions,
    extract,
    extract_detail_fields,
    load_document,
    scrape_detail_page,
)
from src.scraper.fetcher import HardBlockError, PageFetcher
from tests.conftest import LUFFY_LINK, ORIGIN


def _page(body: str, head: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


# ---------------------------------------------------------------------------
# Whole-page extraction
# ---------------------------------------------------------------------------


class TestExtractDetailFields:
    def test_full_detail_page(self, load_html, extraction_options: ExtractionOptions) -> None:
        """Every field is recovered from a complete item page."""
        fields = extract_detail_fields(load_html("detail_luffy.html"), extraction_options)

        assert fields == {
            FieldKind.IMAGE: f"{ORIGIN}/images/card/front/op01-001.jpg",
            FieldKind.PRICE: "2,480円",
            FieldKind.NAME: "モンキー・D・ルフィ(パラレル)",
            FieldKind.CARD_NUMBER: "OP01-001",
            FieldKind.COLOR: "赤",
            FieldKind.RARITY: "L",
        }

    def test_missing_identifier_yields_sentinel(
        self, load_html, extraction_options: ExtractionOptions
    ) -> None:
        """A filler item with no card number gets the sentinel, other misses are omitted."""
        fields = extract_detail_fields(load_html("detail_don.html"), extraction_options)

        assert fields[FieldKind.CARD_NUMBER] == "-"
        assert fields[FieldKind.NAME] == "ドン!!カード(ナミ)"
        assert fields[FieldKind.PRICE] == "120円"
        assert FieldKind.COLOR not in fields
        assert FieldKind.IMAGE not in fields

    def test_empty_page(self, extraction_options: ExtractionOptions) -> None:
        """Nothing to find is not an error."""
        fields = extract_detail_fields("", extraction_options)

        assert fields == {FieldKind.CARD_NUMBER: "-"}


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------


class TestPriceStrategies:
    def test_price_element_below_floor_falls_through(
        self, extraction_options: ExtractionOptions
    ) -> None:
        """A sub-floor amount in the price element never becomes the price."""
        soup = load_document(_page('<span class="price">5円</span><p>販売価格</p><p>1,580 円</p>'))

        assert extract(soup, FieldKind.PRICE, extraction_options) == "1,580円"

    def test_price_from_page_text(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<div>在庫あり 3円 価格 980円</div>"))

        assert extract(soup, FieldKind.PRICE, extraction_options) == "980円"

    def test_script_text_ignored(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page('<script>var p = "99,999円";</script><p>300円</p>'))

        assert extract(soup, FieldKind.PRICE, extraction_options) == "300円"

    def test_no_price(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<p>売り切れ</p>"))

        assert extract(soup, FieldKind.PRICE, extraction_options) is None


# ---------------------------------------------------------------------------
# Name
# ---------------------------------------------------------------------------


class TestNameStrategies:
    def test_heading_with_japanese(self, extraction_options: ExtractionOptions) -> None:
        """Headings without Japanese text are skipped."""
        soup = load_document(_page("<h1>ONE PIECE CARD GAME</h1><h2>ナミ(プロモ)(プロモ版)</h2>"))

        assert extract(soup, FieldKind.NAME, extraction_options) == "ナミ(プロモ版)"

    def test_title_metadata(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(
            _page("<p>12345</p>", head="<title>ロロノア・ゾロ | 遊々亭</title>")
        )

        assert extract(soup, FieldKind.NAME, extraction_options) == "ロロノア・ゾロ"

    def test_og_title_preferred_over_title(self, extraction_options: ExtractionOptions) -> None:
        head = '<meta property="og:title" content="サンジ | 遊々亭"><title>別の名前 | 遊々亭</title>'
        soup = load_document(_page("<p>12345</p>", head=head))

        assert extract(soup, FieldKind.NAME, extraction_options) == "サンジ"


# ---------------------------------------------------------------------------
# Card number
# ---------------------------------------------------------------------------


class TestCardNumberStrategies:
    def test_badge_first(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(
            _page('<p>関連: OP02-001</p><span class="pote">OP01-016</span>')
        )

        assert extract(soup, FieldKind.CARD_NUMBER, extraction_options) == "OP01-016"

    def test_page_text_fallback(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<p>型番 ST01-012</p>"))

        assert extract(soup, FieldKind.CARD_NUMBER, extraction_options) == "ST01-012"

    def test_bare_number_is_not_validated(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<p>09-118</p>"))

        assert extract(soup, FieldKind.CARD_NUMBER, extraction_options) == "-"


# ---------------------------------------------------------------------------
# Color
# ---------------------------------------------------------------------------


class TestColorStrategies:
    def test_inline_label_value(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<table><tr><td>色：青</td></tr></table>"))

        assert extract(soup, FieldKind.COLOR, extraction_options) == "青"

    def test_sibling_cell(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page("<table><tr><th>色</th><td>紫色</td></tr></table>"))

        assert extract(soup, FieldKind.COLOR, extraction_options) == "紫色"

    def test_value_outside_vocabulary_rejected(
        self, extraction_options: ExtractionOptions
    ) -> None:
        soup = load_document(_page("<table><tr><td>色：金</td></tr></table>"))

        assert extract(soup, FieldKind.COLOR, extraction_options) is None

    def test_long_prose_ignored(self, extraction_options: ExtractionOptions) -> None:
        prose = "このカードの色 赤 " + "説明文" * 40
        soup = load_document(_page(f"<table><tr><td>{prose}</td></tr></table>"))

        assert extract(soup, FieldKind.COLOR, extraction_options) is None


# ---------------------------------------------------------------------------
# Rarity & image
# ---------------------------------------------------------------------------


class TestRarityAndImage:
    def test_rarity_from_badge(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page('<span class="rare">P-SEC</span>'))

        assert extract(soup, FieldKind.RARITY, extraction_options) == "P-SEC"

    def test_lazy_image_source(self, extraction_options: ExtractionOptions) -> None:
        soup = load_document(_page('<div class="card-image"><img data-src="/img/op01.jpg"></div>'))

        assert extract(soup, FieldKind.IMAGE, extraction_options) == f"{ORIGIN}/img/op01.jpg"

    def test_thumbnail_rewrite_when_enabled(self) -> None:
        options = ExtractionOptions(
            origin=ORIGIN,
            price_floor=10,
            card_number_sentinel="-",
            rewrite_thumbnails=True,
            thumbnail_segment="/100_140/",
            full_size_segment="/front/",
        )
        soup = load_document(_page('<img src="/images/card/100_140/op01-001.jpg">'))

        assert extract(soup, FieldKind.IMAGE, options) == f"{ORIGIN}/images/card/front/op01-001.jpg"


# ---------------------------------------------------------------------------
# Fetch + extract
# ---------------------------------------------------------------------------


class TestScrapeDetailPage:
    @pytest.mark.asyncio
    async def test_fetch_failure_degrades_to_empty(
        self, extraction_options: ExtractionOptions
    ) -> None:
        with respx.mock:
            respx.get(LUFFY_LINK).mock(return_value=httpx.Response(500))
            async with PageFetcher(jitter_min=0, jitter_max=0) as fetcher:
                fields = await scrape_detail_page(fetcher, LUFFY_LINK, extraction_options)

        assert fields == {}

    @pytest.mark.asyncio
    async def test_hard_block_propagates(self, extraction_options: ExtractionOptions) -> None:
        with respx.mock:
            respx.get(LUFFY_LINK).mock(return_value=httpx.Response(403))
            async with PageFetcher(jitter_min=0, jitter_max=0) as fetcher:
                with pytest.raises(HardBlockError):
                    await scrape_detail_page(fetcher, LUFFY_LINK, extraction_options)

    @pytest.mark.asyncio
    async def test_success(self, load_html, extraction_options: ExtractionOptions) -> None:
        with respx.mock:
            respx.get(LUFFY_LINK).mock(
                return_value=httpx.Response(200, text=load_html("detail_luffy.html"))
            )
            async with PageFetcher(jitter_min=0, jitter_max=0) as fetcher:
                fields = await scrape_detail_page(fetcher, LUFFY_LINK, extraction_options)

        assert fields[FieldKind.PRICE] == "2,480円"

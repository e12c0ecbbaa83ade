"""
Card Price Cache — Scrape Pipeline Tests

End-to-end runs against respx-mocked pages: list page → detail pages →
merged records → cache entry.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

import src.pipeline.scrape as scrape_module
from src.pipeline.scrape import ScrapeOptions, scrape_and_store, scrape_many, scrape_search_term
from src.scraper.fetcher import FetchError, HardBlockError, PageFetcher
from src.storage.cache_store import CacheStore
from src.utils.set_catalog import lookup_set_name
from tests.conftest import DON_LINK, LUFFY_LINK, ORIGIN, SEARCH_BASE, ZORO_LINK, read_fixture

OP01_URL = f"{SEARCH_BASE}?search_word=OP01"


def _mock_site(router: respx.MockRouter, zoro_status: int = 500) -> respx.Route:
    """Legacy list page for OP01 with Luffy and DON detail pages; Zoro's page fails."""
    route = router.get(OP01_URL).mock(
        return_value=httpx.Response(200, text=read_fixture("list_legacy.html"))
    )
    router.get(LUFFY_LINK).mock(
        return_value=httpx.Response(200, text=read_fixture("detail_luffy.html"))
    )
    router.get(ZORO_LINK).mock(return_value=httpx.Response(zoro_status))
    router.get(DON_LINK).mock(
        return_value=httpx.Response(200, text=read_fixture("detail_don.html"))
    )
    return route


def _fetcher() -> PageFetcher:
    return PageFetcher(jitter_min=0, jitter_max=0)


# ---------------------------------------------------------------------------
# scrape_search_term
# ---------------------------------------------------------------------------


class TestScrapeSearchTerm:
    @pytest.mark.asyncio
    async def test_end_to_end(self, scrape_options: ScrapeOptions) -> None:
        with respx.mock as router:
            _mock_site(router)
            async with _fetcher() as fetcher:
                records = await scrape_search_term("OP01", fetcher, scrape_options)

        assert [r.link for r in records] == [LUFFY_LINK, ZORO_LINK, DON_LINK]
        luffy, zoro, don = records

        # detail page wins over the list page
        assert luffy.price == "2,480円"
        assert luffy.name == "モンキー・D・ルフィ(パラレル)"
        assert luffy.image == f"{ORIGIN}/images/card/front/op01-001.jpg"
        assert luffy.color == "赤"
        assert luffy.color_label == "Red"
        assert luffy.card_number == "OP01-001"

        # failed detail page keeps list-page data
        assert zoro.price == "1,200円"
        assert zoro.card_number == "OP01-025"
        assert zoro.rarity == "SR"
        assert zoro.color is None

        # no identifier anywhere
        assert don.card_number == "-"
        assert don.rarity == "DON"
        assert don.price == "120円"

        assert all(r.set_name == lookup_set_name("OP01") for r in records)
        assert len({r.scraped_at for r in records}) == 1

    @pytest.mark.asyncio
    async def test_set_prefix_filter(self, scrape_options: ScrapeOptions) -> None:
        with respx.mock as router:
            _mock_site(router)
            async with _fetcher() as fetcher:
                records = await scrape_search_term(
                    "OP01", fetcher, replace(scrape_options, filter_by_set_prefix=True)
                )

        assert [r.card_number for r in records] == ["OP01-001", "OP01-025"]

    @pytest.mark.asyncio
    async def test_list_page_failure_propagates(self, scrape_options: ScrapeOptions) -> None:
        with respx.mock as router:
            router.get(OP01_URL).mock(return_value=httpx.Response(502))
            async with _fetcher() as fetcher:
                with pytest.raises(FetchError):
                    await scrape_search_term("OP01", fetcher, scrape_options)

    @pytest.mark.asyncio
    async def test_unknown_term_has_no_set(self, scrape_options: ScrapeOptions) -> None:
        with respx.mock as router:
            router.get(f"{SEARCH_BASE}?search_word=zzz").mock(
                return_value=httpx.Response(200, text="<html><body></body></html>")
            )
            async with _fetcher() as fetcher:
                records = await scrape_search_term("zzz", fetcher, scrape_options)

        assert records == []


# ---------------------------------------------------------------------------
# scrape_and_store
# ---------------------------------------------------------------------------


class TestScrapeAndStore:
    @pytest.mark.asyncio
    async def test_rescrape_is_idempotent(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions
    ) -> None:
        """Same source pages twice give one entry with the same records."""

        def _snapshot() -> list[dict]:
            entry = cache_store.load()["OP01"]
            return [r.model_dump(exclude={"scraped_at"}) for r in entry.results]

        with respx.mock as router:
            _mock_site(router)
            router.get(f"{SEARCH_BASE}?search_word=op01").mock(
                return_value=httpx.Response(200, text=read_fixture("list_legacy.html"))
            )
            async with _fetcher() as fetcher:
                first = await scrape_and_store("op01", cache_store, fetcher, scrape_options)
                before = _snapshot()
                second = await scrape_and_store("OP01", cache_store, fetcher, scrape_options)

        data = cache_store.load()
        assert list(data) == ["OP01"]
        assert first.count == second.count == data["OP01"].count == 3
        assert _snapshot() == before

    @pytest.mark.asyncio
    async def test_hard_block_leaves_cache_unchanged(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions, sample_records
    ) -> None:
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        cache_store.put("OP01", sample_records, last_scraped=earlier)
        before = cache_store.path.read_text(encoding="utf-8")

        with respx.mock(assert_all_called=False) as router:
            _mock_site(router, zoro_status=403)
            async with _fetcher() as fetcher:
                with pytest.raises(HardBlockError):
                    await scrape_and_store("OP01", cache_store, fetcher, scrape_options)

        assert cache_store.path.read_text(encoding="utf-8") == before

    @pytest.mark.asyncio
    async def test_blocked_list_page(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions
    ) -> None:
        with respx.mock as router:
            router.get(OP01_URL).mock(return_value=httpx.Response(403))
            async with _fetcher() as fetcher:
                with pytest.raises(HardBlockError):
                    await scrape_and_store("OP01", cache_store, fetcher, scrape_options)

        assert not cache_store.path.exists()


# ---------------------------------------------------------------------------
# scrape_many
# ---------------------------------------------------------------------------


class TestScrapeMany:
    @pytest.mark.asyncio
    async def test_failing_term_skipped(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions
    ) -> None:
        with respx.mock as router:
            _mock_site(router)
            router.get(f"{SEARCH_BASE}?search_word=OP02").mock(return_value=httpx.Response(500))
            async with _fetcher() as fetcher:
                summary = await scrape_many(
                    ["OP02", "OP01"], cache_store, scrape_options,
                    delay_min=0, delay_max=0, fetcher=fetcher,
                )

        assert summary.succeeded == ["OP01"]
        assert summary.failed == ["OP02"]
        assert not summary.blocked
        assert list(cache_store.load()) == ["OP01"]

    @pytest.mark.asyncio
    async def test_hard_block_aborts_remaining_terms(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            blocked = router.get(f"{SEARCH_BASE}?search_word=OP02").mock(
                return_value=httpx.Response(403)
            )
            later = _mock_site(router)
            async with _fetcher() as fetcher:
                summary = await scrape_many(
                    ["OP02", "OP01"], cache_store, scrape_options,
                    delay_min=0, delay_max=0, fetcher=fetcher,
                )

        assert blocked.called
        assert not later.called
        assert summary.blocked
        assert not summary.ok
        assert cache_store.load() == {}

    @pytest.mark.asyncio
    async def test_pause_between_terms(
        self, cache_store: CacheStore, scrape_options: ScrapeOptions
    ) -> None:
        """Randomized pause between terms, none after the last."""
        with respx.mock as router:
            _mock_site(router)
            router.get(f"{SEARCH_BASE}?search_word=ST01").mock(
                return_value=httpx.Response(200, text="<html></html>")
            )
            with patch.object(scrape_module.asyncio, "sleep", new=AsyncMock()) as mock_sleep:
                async with _fetcher() as fetcher:
                    await scrape_many(
                        ["ST01", "OP01"], cache_store, scrape_options,
                        delay_min=5, delay_max=8, fetcher=fetcher,
                    )

        delays = [call.args[0] for call in mock_sleep.call_args_list]
        assert len(delays) == 1
        assert 5 <= delays[0] <= 8

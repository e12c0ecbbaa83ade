"""
Card Price Cache — Page Fetcher

Async HTTP access to the target site. Sends browser-like headers, applies a
random jitter before every request, and classifies failures:

- HardBlockError: the site refused us (403 by default). Fatal for the run.
- FetchError: timeout, transport error or any other non-2xx status.
  Recoverable per page.

No retries: a failed page is reported once and the caller decides.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.config import SearchUrlConvention, settings

logger = structlog.get_logger(__name__)


class FetchError(Exception):
    """A page could not be fetched. Recoverable for a single detail page."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class HardBlockError(FetchError):
    """The site denied access. Aborts the whole scrape run."""


def build_search_url(
    search_term: str,
    convention: SearchUrlConvention = SearchUrlConvention.SEARCH_WORD,
    origin: str | None = None,
    search_path: str | None = None,
) -> str:
    """
    Build the list-page URL for a search term.

    Args:
        search_term: Raw search term (e.g., "OP01" or "09-118").
        convention: Which query-parameter convention to use.
        origin: Site origin, defaults to settings.SITE_ORIGIN.
        search_path: Search endpoint path, defaults to settings.SEARCH_PATH.

    Returns:
        Absolute search URL with the term percent-encoded.
    """
    base = f"{origin or settings.SITE_ORIGIN}{search_path or settings.SEARCH_PATH}"
    encoded = quote(search_term, safe="")
    if convention == SearchUrlConvention.VERS:
        return f"{base}?search_word=&vers[]={encoded}&rare=&type=&kizu=0"
    return f"{base}?search_word={encoded}"


class PageFetcher:
    """
    Async fetcher for list and detail pages.

    Usage:
        async with PageFetcher() as fetcher:
            html = await fetcher.fetch(url)
    """

    def __init__(
        self,
        timeout: float | None = None,
        jitter_min: float | None = None,
        jitter_max: float | None = None,
        hard_block_status_codes: list[int] | None = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self._jitter_min = jitter_min if jitter_min is not None else settings.FETCH_JITTER_MIN_SECONDS
        self._jitter_max = jitter_max if jitter_max is not None else settings.FETCH_JITTER_MAX_SECONDS
        self._hard_block_codes = set(
            hard_block_status_codes
            if hard_block_status_codes is not None
            else settings.HARD_BLOCK_STATUS_CODES
        )
        self._client: httpx.AsyncClient | None = None

    @staticmethod
    def default_headers() -> dict[str, str]:
        return {
            "User-Agent": settings.USER_AGENT,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
            "Accept-Language": settings.ACCEPT_LANGUAGE,
            "Referer": settings.REFERER,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }

    async def __aenter__(self) -> PageFetcher:
        self._client = httpx.AsyncClient(
            headers=self.default_headers(),
            timeout=self._timeout,
            follow_redirects=True,
            max_redirects=settings.MAX_REDIRECTS,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _jitter(self) -> None:
        if self._jitter_max <= 0:
            return
        delay = random.uniform(self._jitter_min, self._jitter_max)
        logger.debug("fetch_jitter_delay", delay_seconds=round(delay, 2))
        await asyncio.sleep(delay)

    async def fetch(self, url: str) -> str:
        """
        GET a page and return its HTML.

        Raises:
            HardBlockError: response status is in the hard-block set.
            FetchError: timeout, transport error, or other non-2xx status.
        """
        assert self._client is not None, "Fetcher not initialized. Use 'async with'."

        await self._jitter()
        logger.info("fetch_page", url=url)

        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            logger.warning("fetch_timeout", url=url, error=str(e))
            raise FetchError(url, f"Timed out fetching {url}") from e
        except httpx.RequestError as e:
            logger.warning("fetch_transport_error", url=url, error=str(e))
            raise FetchError(url, f"Transport error fetching {url}: {e}") from e

        status = response.status_code
        if status in self._hard_block_codes:
            logger.error("fetch_hard_block", url=url, status_code=status)
            raise HardBlockError(
                url,
                f"HTTP {status}: the website is blocking requests. The hosting "
                "IP address may be blocked; run the scrape locally or from a "
                "different host.",
                status_code=status,
            )
        if not 200 <= status < 300:
            logger.warning("fetch_bad_status", url=url, status_code=status)
            raise FetchError(url, f"HTTP {status} fetching {url}", status_code=status)

        return response.text

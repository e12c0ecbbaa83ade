"""
Card Price Cache — JSON Cache Store

One JSON document maps a search term to its last scrape:

    {"OP01": {"results": [...], "lastScraped": "2024-01-01T00:00:00Z", "count": 121}}

The document is the unit of durability. Saves overwrite it wholesale through
a temp file + rename, so a reader never sees a half-written file. There is no
locking: concurrent writers to the same document are last-writer-wins.

A missing or corrupt document loads as an empty mapping; corruption is logged,
never raised.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.config import settings
from src.scraper import CardRecord

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """Results of one scrape of one search term."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    results: list[CardRecord] = Field(default_factory=list)
    last_scraped: datetime | None = None
    count: int = 0

    @field_validator("last_scraped")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are UTC so entries stay comparable."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_results(
        cls,
        results: Iterable[CardRecord],
        last_scraped: datetime | None = None,
    ) -> CacheEntry:
        """Build an entry whose count always equals len(results)."""
        results = list(results)
        return cls(
            results=results,
            last_scraped=last_scraped or datetime.now(timezone.utc),
            count=len(results),
        )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class CacheConfig:
    """Where the cache document lives and whether its directory may be created."""

    path: Path
    create_dirs: bool = True

    @classmethod
    def from_settings(cls, path: str | Path | None = None) -> CacheConfig:
        return cls(
            path=Path(path or settings.CACHE_FILE),
            create_dirs=settings.CACHE_CREATE_DIRS,
        )


@dataclass(frozen=True)
class LookupResult:
    """Records served for one query."""

    search_term: str
    results: list[CardRecord]
    last_scraped: datetime | None
    exact: bool

    @property
    def count(self) -> int:
        return len(self.results)


def normalize_term(search_term: str) -> str:
    """Cache key for a search term: trimmed and upper-cased."""
    return search_term.strip().upper()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CacheStore:
    """
    Read-modify-write access to one cache document.

    Usage:
        store = CacheStore(CacheConfig.from_settings())
        store.put("OP01", records)
        data = store.load()
    """

    def __init__(self, config: CacheConfig) -> None:
        self.config = config

    @property
    def path(self) -> Path:
        return self.config.path

    def initialize(self) -> None:
        """Create the document's parent directory when the config allows it."""
        if self.config.create_dirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> dict[str, CacheEntry]:
        """
        Load the whole document.

        Returns an empty mapping when the file is absent or unreadable. Entries
        that fail validation are skipped and logged.
        """
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("cache_load_failed", path=str(self.path), error=str(e))
            return {}

        if not isinstance(raw, dict):
            logger.error(
                "cache_load_failed",
                path=str(self.path),
                error=f"expected a JSON object, got {type(raw).__name__}",
            )
            return {}

        data: dict[str, CacheEntry] = {}
        for term, entry in raw.items():
            try:
                data[term] = CacheEntry.model_validate(entry)
            except ValidationError as e:
                logger.error(
                    "cache_entry_invalid",
                    path=str(self.path),
                    search_term=term,
                    error_count=e.error_count(),
                )
        return data

    def save(self, data: dict[str, CacheEntry]) -> None:
        """Overwrite the whole document atomically."""
        self.initialize()
        payload = {term: entry.to_json_dict() for term, entry in data.items()}
        serialized = json.dumps(payload, ensure_ascii=False, indent=2)

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(serialized)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.info("cache_saved", path=str(self.path), terms=len(payload))

    def put(
        self,
        search_term: str,
        results: Iterable[CardRecord],
        last_scraped: datetime | None = None,
    ) -> CacheEntry:
        """Replace the entry for one search term and persist the document."""
        entry = CacheEntry.from_results(results, last_scraped)
        data = self.load()
        data[normalize_term(search_term)] = entry
        self.save(data)
        logger.info(
            "cache_entry_written",
            search_term=normalize_term(search_term),
            count=entry.count,
        )
        return entry

    def search(self, search_term: str) -> LookupResult | None:
        return lookup_term(self.load(), search_term)


# ---------------------------------------------------------------------------
# Serving-side lookup
# ---------------------------------------------------------------------------


def _record_matches(record: CardRecord, query: str) -> bool:
    card_number = (record.card_number or "").lower()
    name = (record.name or "").lower()
    return query in card_number or query in name


def lookup_term(data: dict[str, CacheEntry], search_term: str) -> LookupResult | None:
    """
    Find cached records for a query.

    Exact key first (as given, then normalized). Otherwise every cached record
    whose card number or name contains the query (case-insensitive) is
    collected across all entries, reporting the newest lastScraped among the
    entries that contributed.
    """
    for key in (search_term, normalize_term(search_term)):
        entry = data.get(key)
        if entry is not None:
            return LookupResult(
                search_term=search_term,
                results=list(entry.results),
                last_scraped=entry.last_scraped,
                exact=True,
            )

    query = search_term.strip().lower()
    if not query:
        return None

    matches: list[CardRecord] = []
    latest: datetime | None = None
    for entry in data.values():
        found = [record for record in entry.results if _record_matches(record, query)]
        if not found:
            continue
        matches.extend(found)
        if entry.last_scraped and (latest is None or entry.last_scraped > latest):
            latest = entry.last_scraped

    if not matches:
        return None
    return LookupResult(search_term=search_term, results=matches, last_scraped=latest, exact=False)

"""Card Price Cache — Scraper Layer"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.utils.color_map import translate_color


class CardRecord(BaseModel):
    """One scraped item. Immutable; serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    name: str | None = None
    card_number: str | None = None
    price: str | None = None
    image: str | None = None
    link: str | None = None
    color: str | None = None
    rarity: str | None = None
    set_name: str | None = Field(default=None, alias="set")
    scraped_at: datetime | None = None

    @property
    def color_label(self) -> str | None:
        """English label for the Japanese colour token, if any."""
        return translate_color(self.color)

    def to_json_dict(self) -> dict:
        """JSON-ready dict with camelCase keys and absent fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

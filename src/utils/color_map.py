"""
Card Price Cache — Colour Vocabulary

Card colours appear on detail pages as Japanese tokens, optionally with the
trailing 色 ("colour") suffix. Only tokens in this closed set are accepted by
the extractor.
"""

from __future__ import annotations

from enum import Enum


class CardColor(str, Enum):
    """English colour labels."""
    RED = "Red"
    BLUE = "Blue"
    GREEN = "Green"
    YELLOW = "Yellow"
    PURPLE = "Purple"
    BLACK = "Black"


_COLOR_MAP: dict[str, CardColor] = {
    "赤": CardColor.RED,
    "青": CardColor.BLUE,
    "緑": CardColor.GREEN,
    "黄": CardColor.YELLOW,
    "紫": CardColor.PURPLE,
    "黒": CardColor.BLACK,
}

COLOR_LABEL = "色"

# Closed set of accepted tokens: bare and 色-suffixed forms
COLOR_TOKENS: frozenset[str] = frozenset(
    [*_COLOR_MAP, *(token + COLOR_LABEL for token in _COLOR_MAP)]
)


def is_color_token(value: str) -> bool:
    return value in COLOR_TOKENS


def translate_color(value: str | None) -> str | None:
    """
    Translate a Japanese colour token to its English label.

    Returns None for empty input or tokens outside the vocabulary.
    """
    if not value:
        return None
    token = value.strip()
    if token.endswith(COLOR_LABEL) and len(token) > 1:
        token = token[: -len(COLOR_LABEL)]
    color = _COLOR_MAP.get(token)
    return color.value if color else None

"""
Card Price Cache — Text Patterns

Regex families shared by the list-page parser and the detail-page extractor:
prices, card numbers, names and rarity codes, plus small normalisation helpers.
All functions are pure and never raise on unexpected text.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin

# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

CURRENCY_MARKER = "円"

PRICE_RE = re.compile(r"\d[\d,]*\s*円")
YEN_PREFIX_RE = re.compile(r"[¥￥]\s*(\d[\d,]*)")


def price_value(text: str) -> int | None:
    """Numeric value of a price string: non-digit/non-comma dropped, commas removed."""
    digits = re.sub(r"[^\d,]", "", text).replace(",", "")
    if not digits:
        return None
    return int(digits)


def clears_floor(text: str, floor: int) -> bool:
    value = price_value(text)
    return value is not None and value >= floor


def find_price(text: str, floor: int) -> str | None:
    """
    First yen-suffixed amount in ``text`` whose value is >= ``floor``.

    Whitespace inside the match ("1,200 円") is removed from the result.
    """
    for match in PRICE_RE.finditer(text):
        if clears_floor(match.group(0), floor):
            return re.sub(r"\s+", "", match.group(0))
    return None


def find_prefixed_price(text: str, floor: int) -> str | None:
    """Recover a "¥1,200" style amount, normalised to the suffixed "1,200円" form."""
    for match in YEN_PREFIX_RE.finditer(text):
        amount = match.group(1)
        if clears_floor(amount, floor):
            return f"{amount}{CURRENCY_MARKER}"
    return None


# ---------------------------------------------------------------------------
# Card numbers
# ---------------------------------------------------------------------------

CARD_NUMBER_PREFIXES = ("OP", "ST", "PRB", "EB", "P")
_PREFIX_GROUP = "(?:" + "|".join(CARD_NUMBER_PREFIXES) + ")"

# Ordered: set code + digits first ("OP01-001"), then promo form ("P-001")
CARD_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"(?<![A-Za-z]){_PREFIX_GROUP}\d+-\d+"),
    re.compile(rf"(?<![A-Za-z]){_PREFIX_GROUP}-\d+"),
)
BARE_CARD_NUMBER_RE = re.compile(r"\d+-\d+")

_SET_PREFIX_RE = re.compile(rf"^{_PREFIX_GROUP}\d+")
_SET_PREFIX_ONLY_RE = re.compile(rf"^{_PREFIX_GROUP}\d+$")


def match_card_number(text: str | None) -> str | None:
    """First card number of the required-prefix family found in ``text``."""
    if not text:
        return None
    for pattern in CARD_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def match_loose_card_number(text: str | None) -> str | None:
    """Prefix family first, then a bare "09-118" style number."""
    if not text:
        return None
    number = match_card_number(text)
    if number:
        return number
    match = BARE_CARD_NUMBER_RE.search(text)
    return match.group(0) if match else None


def search_set_prefix(search_term: str) -> str | None:
    """
    Leading set code and digits of a search term, upper-cased.

    "op01" → "OP01", "OP01-120" → "OP01", "P-" → None.
    """
    match = _SET_PREFIX_RE.match(search_term.strip().upper())
    return match.group(0) if match else None


def is_set_prefix(value: str) -> bool:
    return bool(_SET_PREFIX_ONLY_RE.match(value))


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

_JP_CHARS = r"\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF・！!"
_JP_RE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")

NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Monkey.D ルフィ", "ex-Name ゾロ(パラレル)"
    re.compile(rf"[A-Za-z]+(?:-[A-Za-z]+)?\s+[{_JP_CHARS}]+(?:\([^)]*\))*"),
    # "- ロロノア・ゾロ"
    re.compile(rf"-\s+[{_JP_CHARS}]+(?:\([^)]*\))*"),
    # "ロロノア・ゾロ(パラレル)"
    re.compile(rf"[{_JP_CHARS}]+(?:\([^)]*\))*"),
)

DECORATIVE_SUBSTRINGS: tuple[str, ...] = (
    "(ドン!!カード)",
    "【ドン!!カード】",
    "(ドン！！カード)",
    "【ドン！！カード】",
)

# Competing variant markers, most specific first within each family
VARIANT_MARKER_FAMILIES: tuple[tuple[str, ...], ...] = (
    ("スーパーパラレル", "パラレル"),
    ("プロモ版", "プロモ"),
)

_PAREN_GROUP_RE = re.compile(r"\(([^)]*)\)")


def contains_japanese(text: str | None) -> bool:
    return bool(text and _JP_RE.search(text))


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def extract_name_from_text(text: str) -> str | None:
    """Recover a card name from raw page text using the ordered name patterns."""
    for pattern in NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def _drop_competing_variants(name: str) -> str:
    groups = _PAREN_GROUP_RE.findall(name)
    if len(groups) < 2:
        return name
    for family in VARIANT_MARKER_FAMILIES:
        present = [marker for marker in family if f"({marker})" in name]
        if len(present) < 2:
            continue
        # keep the most specific marker, drop the rest
        for marker in present[1:]:
            name = name.replace(f"({marker})", "", 1)
    return name


def clean_name(raw: str | None) -> str | None:
    """
    Normalise an extracted name.

    Collapses whitespace, strips a leading dash, removes decorative labels and
    resolves competing variant markers. Returns None if nothing is left.
    """
    if not raw:
        return None
    name = normalize_whitespace(raw)
    if name.startswith("-"):
        name = name.lstrip("- ").strip()
    for decoration in DECORATIVE_SUBSTRINGS:
        stripped = name.replace(decoration, "").strip()
        if stripped:
            name = stripped
    name = normalize_whitespace(_drop_competing_variants(name))
    return name or None


# ---------------------------------------------------------------------------
# Rarity
# ---------------------------------------------------------------------------

RARITY_ORDER: tuple[str, ...] = (
    "P-SEC", "SEC", "P-SP", "SP", "P-SR", "SR", "P-L", "L",
    "R", "P-UC", "UC", "P-C", "C", "DON",
)
FILLER_RARITY = "DON"
FILLER_MARKERS: tuple[str, ...] = ("ドン!!", "ドン！！")

_PREFIXED_RARITY_RE = re.compile(r"\bP-(SEC|SP|SR|UC|L|C)\b")
_BARE_RARITY_RE = re.compile(r"\b(SEC|SP|SR|UC|L|R|C)\b")


def parse_rarity(text: str | None) -> str | None:
    """
    Rarity code from image alt-text or a badge.

    The filler marker short-circuits to "DON"; prefixed codes ("P-SR") are
    tried before bare codes so "P-SR" is not read as "SR".
    """
    if not text:
        return None
    if any(marker in text for marker in FILLER_MARKERS):
        return FILLER_RARITY
    match = _PREFIXED_RARITY_RE.search(text)
    if match:
        return f"P-{match.group(1)}"
    match = _BARE_RARITY_RE.search(text)
    if match:
        return match.group(1)
    return None


def is_known_rarity(value: str | None) -> bool:
    return value in RARITY_ORDER


def rarity_sort_key(rarity: str | None) -> tuple[int, str]:
    """Display order of rarity groups; unknown rarities sort last, alphabetically."""
    if rarity in RARITY_ORDER:
        return (RARITY_ORDER.index(rarity), "")
    return (len(RARITY_ORDER), rarity or "")


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

def absolutize_url(url: str | None, origin: str) -> str | None:
    """Rewrite a relative path to an absolute URL on ``origin``."""
    if not url:
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith(("http://", "https://")):
        return url
    return urljoin(origin.rstrip("/") + "/", url)


def rewrite_thumbnail(url: str, thumbnail_segment: str, full_size_segment: str) -> str:
    """Point a thumbnail image URL at its full-size variant."""
    if thumbnail_segment and thumbnail_segment in url:
        return url.replace(thumbnail_segment, full_size_segment, 1)
    return url

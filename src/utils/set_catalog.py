"""
Card Price Cache — Set Catalog

Static search-term → set-name lookup and the enumerable list of search terms
the scrape-all run walks through. Set names are not scraped; the pipeline
assigns them from this table.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(__name__)

_SET_CODE_RE = re.compile(r"^(OP|ST|PRB|EB)\d{2}", re.IGNORECASE)

# ---------------------------------------------------------------------------
# Set names by set code
# ---------------------------------------------------------------------------

SET_NAMES: dict[str, str] = {
    # Booster packs
    "OP01": "ROMANCE DAWN",
    "OP02": "Paramount War",
    "OP03": "Pillars of Strength",
    "OP04": "Kingdoms of Intrigue",
    "OP05": "Awakening of the New Era",
    "OP06": "Wings of the Captain",
    "OP07": "500 Years in the Future",
    "OP08": "Two Legends",
    "OP09": "Emperors in the New World",
    "OP10": "Royal Blood",
    "OP11": "A Fist of Divine Speed",
    # Extra boosters
    "EB01": "Memorial Collection",
    "EB02": "Anime 25th Collection",
    # Premium boosters
    "PRB01": "ONE PIECE CARD THE BEST",
    # Starter decks
    "ST01": "Straw Hat Crew",
    "ST02": "Worst Generation",
    "ST03": "The Seven Warlords of the Sea",
    "ST04": "Animal Kingdom Pirates",
    "ST05": "ONE PIECE FILM edition",
    "ST06": "Absolute Justice",
    "ST07": "Big Mom Pirates",
    "ST08": "Monkey.D.Luffy",
    "ST09": "Yamato",
    "ST10": "The Three Captains",
    "ST11": "Uta",
    "ST12": "Zoro and Sanji",
    "ST13": "The Three Brothers",
    "ST14": "3D2Y",
    "ST15": "RED Edward.Newgate",
    "ST16": "GREEN Uta",
    "ST17": "BLUE Donquixote Doflamingo",
    "ST18": "PURPLE Monkey.D.Luffy",
    "ST19": "BLACK Smoker",
    "ST20": "YELLOW Charlotte Katakuri",
    "ST21": "EX Gear5",
    # Promotional cards
    "P": "Promotion Cards",
}


def _build_known_search_terms() -> list[str]:
    terms = [f"OP{i:02d}" for i in range(1, 21)]
    terms += [f"EB{i:02d}" for i in range(1, 11)]
    terms += [f"ST{i:02d}" for i in range(1, 31)]
    # All P-series promos in one search
    terms.append("P-")
    return terms


KNOWN_SEARCH_TERMS: list[str] = _build_known_search_terms()


def set_code_for_term(search_term: str) -> str | None:
    """
    Derive the set code a search term belongs to.

    "op01" → "OP01", "OP09-118" → "OP09", "P-" / "P-001" → "P".
    """
    term = search_term.strip().upper()
    match = _SET_CODE_RE.match(term)
    if match:
        return match.group(0)
    if term.startswith("P-"):
        return "P"
    return None


def lookup_set_name(search_term: str) -> str | None:
    """Return the human-readable set name for a search term, or None."""
    code = set_code_for_term(search_term)
    if code is None:
        return None
    name = SET_NAMES.get(code)
    if name is None:
        logger.debug("set_name_unknown", search_term=search_term, set_code=code)
    return name

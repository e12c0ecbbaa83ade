"""
Card Price Cache — Set Catalog & Colour Vocabulary Tests
"""

from __future__ import annotations

import pytest

from src.scraper import CardRecord
from src.utils.color_map import COLOR_TOKENS, is_color_token, translate_color
from src.utils.set_catalog import KNOWN_SEARCH_TERMS, lookup_set_name, set_code_for_term


class TestSetCatalog:
    @pytest.mark.parametrize(
        "term, code",
        [
            ("op01", "OP01"),
            ("OP09-118", "OP09"),
            ("ST21", "ST21"),
            ("PRB01", "PRB01"),
            ("P-", "P"),
            ("P-042", "P"),
            ("09-118", None),
        ],
    )
    def test_set_code_for_term(self, term: str, code: str | None) -> None:
        assert set_code_for_term(term) == code

    def test_lookup_set_name(self) -> None:
        assert lookup_set_name("OP01") == "ROMANCE DAWN"
        assert lookup_set_name("st01") == "Straw Hat Crew"
        assert lookup_set_name("P-") == "Promotion Cards"

    def test_unknown_set(self) -> None:
        """Known shape, no catalog entry: set stays empty."""
        assert lookup_set_name("OP20") is None
        assert lookup_set_name("ルフィ") is None

    def test_known_search_terms(self) -> None:
        assert KNOWN_SEARCH_TERMS[0] == "OP01"
        assert "OP20" in KNOWN_SEARCH_TERMS
        assert "EB10" in KNOWN_SEARCH_TERMS
        assert "ST30" in KNOWN_SEARCH_TERMS
        assert KNOWN_SEARCH_TERMS[-1] == "P-"
        assert len(KNOWN_SEARCH_TERMS) == 61


class TestColorMap:
    @pytest.mark.parametrize(
        "token, label",
        [("赤", "Red"), ("青色", "Blue"), ("緑", "Green"), ("黄色", "Yellow"), ("紫", "Purple"), ("黒", "Black")],
    )
    def test_translate(self, token: str, label: str) -> None:
        assert translate_color(token) == label

    def test_unknown_token(self) -> None:
        assert translate_color("金") is None
        assert translate_color("色") is None
        assert translate_color(None) is None

    def test_closed_vocabulary(self) -> None:
        assert len(COLOR_TOKENS) == 12
        assert is_color_token("赤色")
        assert not is_color_token("赤い")

    def test_record_colour_label(self) -> None:
        assert CardRecord(color="紫色").color_label == "Purple"
        assert CardRecord().color_label is None

"""
Tests for A-share symbol normalisation.
"""

import pytest

from arena_engine.errors import ConfigurationError
from arena_engine.market_data.symbols import base_symbol, normalize_symbol, normalize_symbols


class TestNormalizeSymbol:
    """Exchange suffix inference."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("600519", "600519.SS"),
            ("601398", "601398.SS"),
            ("688981", "688981.SS"),
            ("000001", "000001.SZ"),
            ("002594", "002594.SZ"),
            ("300750", "300750.SZ"),
        ],
    )
    def test_bare_codes(self, code: str, expected: str) -> None:
        assert normalize_symbol(code) == expected

    def test_suffixed_symbol_is_upper_cased(self) -> None:
        assert normalize_symbol(" 600519.ss ") == "600519.SS"

    def test_suffixed_symbol_passes_through(self) -> None:
        """Explicit suffixes are trusted, even for codes we could infer."""
        assert normalize_symbol("000001.SS") == "000001.SS"

    @pytest.mark.parametrize("bad", ["", "   ", "123456", "60051", "ABC"])
    def test_unknown_symbols_raise(self, bad: str) -> None:
        with pytest.raises(ConfigurationError):
            normalize_symbol(bad)


class TestNormalizeSymbols:
    def test_deduplicates_in_first_seen_order(self) -> None:
        result = normalize_symbols(["000002", "600519", "600519.SS", "000002.sz"])
        assert result == ["000002.SZ", "600519.SS"]

    def test_base_symbol(self) -> None:
        assert base_symbol("600519.SS") == "600519"
        assert base_symbol("600519") == "600519"

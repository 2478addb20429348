"""
A-share symbol normalisation.

Bare six-digit codes are mapped to their Yahoo exchange suffix:
Shenzhen (.SZ) for 000/002/300 codes, Shanghai (.SS) for 600/601/603/605/688.
"""

import re

from arena_engine.errors import ConfigurationError

SHENZHEN_PREFIXES = ("000", "002", "300")
SHANGHAI_PREFIXES = ("600", "601", "603", "605", "688")

_BARE_CODE = re.compile(r"^\d{6}$")
_SUFFIXED = re.compile(r"^[A-Z0-9^=-]+\.[A-Z]{1,3}$")


def normalize_symbol(symbol: str) -> str:
    """
    Normalise a symbol to its exchange-suffixed form.

    Args:
        symbol: Bare code (600519) or suffixed symbol (600519.ss)

    Returns:
        Upper-cased suffixed symbol, e.g. 600519.SS

    Raises:
        ConfigurationError: Symbol is empty or its exchange cannot be inferred
    """
    text = (symbol or "").strip().upper()
    if not text:
        raise ConfigurationError("Symbol must not be empty")

    if _SUFFIXED.match(text):
        return text

    if _BARE_CODE.match(text):
        if text.startswith(SHENZHEN_PREFIXES):
            return f"{text}.SZ"
        if text.startswith(SHANGHAI_PREFIXES):
            return f"{text}.SS"

    raise ConfigurationError(f"Cannot infer exchange for symbol: {symbol}")


def normalize_symbols(symbols: list[str]) -> list[str]:
    """Normalise and de-duplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for symbol in symbols:
        seen.setdefault(normalize_symbol(symbol), None)
    return list(seen)


def base_symbol(symbol: str) -> str:
    """Strip the exchange suffix: 600519.SS -> 600519."""
    return symbol.split(".", 1)[0]

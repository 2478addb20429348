"""
Technical indicators for decision engines.

All functions are pure and deterministic - same inputs always produce same outputs.
Only uses data up to current index (no lookahead). Values are None until the
window has enough history.
"""

from collections.abc import Sequence

from arena_engine.domain import (
    BollingerBands,
    EMAValues,
    Indicators,
    Quote,
    SMAValues,
)


def ema(values: Sequence[float], period: int) -> list[float | None]:
    """
    Calculate Exponential Moving Average.

    Args:
        values: Price series
        period: EMA period

    Returns:
        EMA values, seeded with the SMA of the first period values
    """
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period:
        return result

    multiplier = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    result[period - 1] = current

    for i in range(period, len(values)):
        current = (values[i] - current) * multiplier + current
        result[i] = current

    return result


def sma(values: Sequence[float], period: int) -> list[float | None]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Price series
        period: SMA period

    Returns:
        SMA values
    """
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period:
        return result

    window_sum = sum(values[:period])
    result[period - 1] = window_sum / period

    for i in range(period, len(values)):
        window_sum = window_sum - values[i - period] + values[i]
        result[i] = window_sum / period

    return result


def rsi(closes: Sequence[float], period: int = 14) -> list[float | None]:
    """
    Calculate Relative Strength Index with Wilder smoothing.

    Args:
        closes: Close prices
        period: RSI period (default 14)

    Returns:
        RSI values (0-100); the first value is available at index `period`
    """
    result: list[float | None] = [None] * len(closes)
    if len(closes) < period + 1:
        return result

    gains = [0.0] * len(closes)
    losses = [0.0] * len(closes)
    for i in range(1, len(closes)):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains[i] = change
        else:
            losses[i] = -change

    avg_gain = sum(gains[1 : period + 1]) / period
    avg_loss = sum(losses[1 : period + 1]) / period
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i] = _rsi_value(avg_gain, avg_loss)

    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def bollinger_bands(
    closes: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> list[tuple[float, float, float] | None]:
    """
    Calculate Bollinger Bands.

    Args:
        closes: Close prices
        period: SMA period (default 20)
        std_dev: Standard deviation multiplier (default 2.0)

    Returns:
        (upper, middle, lower) per index
    """
    middle = sma(closes, period)
    result: list[tuple[float, float, float] | None] = [None] * len(closes)

    for i in range(period - 1, len(closes)):
        mid = middle[i]
        if mid is None:
            continue
        window = closes[i - period + 1 : i + 1]
        variance = sum((x - mid) ** 2 for x in window) / len(window)
        std = variance**0.5
        result[i] = (mid + std_dev * std, mid, mid - std_dev * std)

    return result


def _rounded(value: float | None) -> float | None:
    return round(value, 4) if value is not None else None


def compute_indicator_series(quotes: Sequence[Quote]) -> list[Indicators]:
    """
    Build one Indicators record per quote from the quotes' closing prices.

    Quotes must be in chronological order; output order matches input order.
    """
    closes = [q.price for q in quotes]
    rsi14 = rsi(closes, 14)
    ema12 = ema(closes, 12)
    ema26 = ema(closes, 26)
    sma20 = sma(closes, 20)
    sma50 = sma(closes, 50)
    bands = bollinger_bands(closes, 20, 2.0)

    series: list[Indicators] = []
    for i, quote in enumerate(quotes):
        band = bands[i]
        series.append(
            Indicators(
                symbol=quote.symbol,
                timestamp=quote.timestamp,
                rsi=_rounded(rsi14[i]),
                ema=(
                    EMAValues(ema12=_rounded(ema12[i]), ema26=_rounded(ema26[i]))
                    if ema12[i] is not None
                    else None
                ),
                sma=(
                    SMAValues(sma20=_rounded(sma20[i]), sma50=_rounded(sma50[i]))
                    if sma20[i] is not None
                    else None
                ),
                bollinger=(
                    BollingerBands(
                        upper=round(band[0], 4),
                        middle=round(band[1], 4),
                        lower=round(band[2], 4),
                    )
                    if band is not None
                    else None
                ),
            )
        )
    return series

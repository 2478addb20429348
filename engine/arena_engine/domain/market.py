"""
Market data domain models.

Quotes and indicators are time-indexed and immutable once recorded.
Static analyses (technical levels, fundamentals, sentiment) carry no time
dimension; each is a fixed set of optional typed fields.
"""

from pydantic import Field

from arena_engine.domain.base import ArenaModel, FrozenArenaModel


class Quote(FrozenArenaModel):
    """Price snapshot for one symbol at one timestamp."""

    symbol: str
    price: float = Field(..., gt=0)
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    day_high: float = 0.0
    day_low: float = 0.0
    open: float = 0.0
    previous_close: float = 0.0
    timestamp: int = Field(..., description="Epoch milliseconds")


class EMAValues(FrozenArenaModel):
    """Exponential moving averages."""

    ema12: float | None = None
    ema26: float | None = None


class SMAValues(FrozenArenaModel):
    """Simple moving averages."""

    sma20: float | None = None
    sma50: float | None = None


class BollingerBands(FrozenArenaModel):
    """Bollinger bands (20 period, 2 standard deviations)."""

    upper: float
    middle: float
    lower: float


class Indicators(FrozenArenaModel):
    """Technical indicators for one symbol at one timestamp."""

    symbol: str
    timestamp: int
    rsi: float | None = None
    ema: EMAValues | None = None
    sma: SMAValues | None = None
    bollinger: BollingerBands | None = None


class AdvancedTechnical(ArenaModel):
    """Key technical levels and outlooks."""

    support: float | None = None
    resistance: float | None = None
    stop_loss: float | None = None
    short_term_outlook: str | None = None
    intermediate_term_outlook: str | None = None
    long_term_outlook: str | None = None
    valuation: str | None = None


class Fundamentals(ArenaModel):
    """Fundamental ratios. Debt-to-equity is a percentage (150 means 1.5x)."""

    return_on_equity: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    profit_margins: float | None = None
    revenue_growth: float | None = None
    trailing_pe: float | None = None
    price_to_book: float | None = None


class Sentiment(ArenaModel):
    """Analyst consensus."""

    analyst_rating: str | None = Field(
        default=None,
        description="Recommendation key: strong_buy, buy, hold, sell, strong_sell",
    )
    recommendation_mean: float | None = None
    number_of_analyst_opinions: int | None = None


class ComprehensiveAnalysis(ArenaModel):
    """Everything the decision engines see for one symbol at one tick."""

    symbol: str
    price: Quote | None = None
    technical: Indicators | None = None
    advanced: AdvancedTechnical = Field(default_factory=AdvancedTechnical)
    fundamental: Fundamentals = Field(default_factory=Fundamentals)
    sentiment: Sentiment = Field(default_factory=Sentiment)


class CacheStatus(ArenaModel):
    """Result of the last market data load."""

    is_loaded: bool = False
    symbols_count: int = 0
    total_quotes: int = 0
    total_indicators: int = 0
    load_time: int = Field(default=0, description="Load duration in milliseconds")
    start_time: int = 0
    end_time: int = 0
    symbols: list[str] = Field(default_factory=list)
    failed_symbols: list[str] = Field(default_factory=list)

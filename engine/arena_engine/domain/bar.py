"""
Bar (OHLCV) domain model.

Represents one hourly price bar as returned by the upstream source.
Immutable so a loaded series can be shared between concurrent readers.
"""

from pydantic import Field, ValidationInfo, field_validator

from arena_engine.domain.base import FrozenArenaModel
from arena_engine.domain.market import Quote


class Bar(FrozenArenaModel):
    """
    A single OHLCV bar.

    The quote derived from a bar treats the bar's open as the previous close,
    so change and change percent describe the move within the bar.
    """

    symbol: str = Field(..., description="Normalised symbol, e.g. 600519.SS")
    timestamp: int = Field(..., description="Bar open time (epoch ms)")
    open: float = Field(..., gt=0, description="Opening price")
    high: float = Field(..., gt=0, description="Highest price")
    low: float = Field(..., gt=0, description="Lowest price")
    close: float = Field(..., gt=0, description="Closing price")
    volume: float = Field(default=0.0, ge=0, description="Traded volume")

    @field_validator("low")
    @classmethod
    def low_lte_high(cls, v: float, info: ValidationInfo) -> float:
        """Validate low <= high."""
        data = info.data
        if "high" in data and v > data["high"]:
            raise ValueError("low must be <= high")
        return v

    @property
    def change(self) -> float:
        """Close minus open."""
        return self.close - self.open

    @property
    def change_percent(self) -> float:
        """Move within the bar as a percentage of the open."""
        return (self.close - self.open) / self.open * 100

    def to_quote(self) -> Quote:
        """Map this bar to the quote recorded for its timestamp."""
        return Quote(
            symbol=self.symbol,
            price=self.close,
            change=self.change,
            change_percent=self.change_percent,
            volume=self.volume,
            day_high=self.high,
            day_low=self.low,
            open=self.open,
            previous_close=self.open,
            timestamp=self.timestamp,
        )

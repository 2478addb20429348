"""
MarketDataSource interface.

Defines the contract for the upstream market data collaborator.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from arena_engine.domain import (
    AdvancedTechnical,
    Bar,
    Fundamentals,
    Quote,
    Sentiment,
)


class MarketDataSource(ABC):
    """
    Abstract base class for upstream market data.

    Every call may be slow or rate limited; callers cache results.
    Implementations raise UpstreamFetchError on permanent failure.
    """

    # =========================================================================
    # Prices
    # =========================================================================

    @abstractmethod
    async def get_quote(self, symbol: str) -> Quote:
        """
        Get a single real-time quote.

        Args:
            symbol: Normalised symbol (e.g. 600519.SS)

        Returns:
            Latest quote.
        """
        pass

    @abstractmethod
    async def get_history(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str = "1h",
    ) -> list[Bar]:
        """
        Get historical OHLCV bars.

        Args:
            symbol: Normalised symbol
            start: Range start (aware datetime)
            end: Range end (aware datetime)
            interval: Bar interval

        Returns:
            Bars, oldest first.
        """
        pass

    # =========================================================================
    # Static Analyses
    # =========================================================================

    @abstractmethod
    async def get_advanced_technical(self, symbol: str) -> AdvancedTechnical:
        """Get key technical levels and outlooks."""
        pass

    @abstractmethod
    async def get_fundamentals(self, symbol: str) -> Fundamentals:
        """Get fundamental ratios."""
        pass

    @abstractmethod
    async def get_sentiment(self, symbol: str) -> Sentiment:
        """Get analyst consensus."""
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Release network resources. Default is a no-op."""
        pass

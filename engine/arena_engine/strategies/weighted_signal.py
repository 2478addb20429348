"""
Weighted-signal decision engine (the default).

Counts eight independent boolean signals, four pointing to buy and four to
sell, and acts when either side reaches 40% of the total.
"""

from arena_engine.domain import Decision, DecisionAction, SignalBreakdown
from arena_engine.interfaces.strategy import DecisionContext, DecisionEngine

TOTAL_SIGNALS = 8
ACTION_RATIO = 0.4

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
MOMENTUM_PCT = 3.0
SUPPORT_BAND = 1.02
RESISTANCE_BAND = 0.98
MIN_ROE = 0.15
MAX_DEBT_TO_EQUITY = 100.0
MIN_LOT = 100


def _fmt(value: float | None, digits: int = 1) -> str:
    return f"{value:.{digits}f}" if value is not None else "N/A"


class WeightedSignalStrategy(DecisionEngine):
    """
    Signals:
        RSI < 30 (buy) / RSI > 70 (sell)
        change% > 3 (buy) / change% < -3 (sell)
        price <= support * 1.02 (buy) / price >= resistance * 0.98 (sell)
        ROE > 0.15 (buy) / debt-to-equity > 100 (sell)
        analyst rating "buy" (buy) / "sell" (sell)

    Buy needs no open position and cash for a full lot at the current price.
    """

    @property
    def name(self) -> str:
        return "weighted_signal"

    def count_signals(self, context: DecisionContext) -> tuple[int, int]:
        """Return (buy_signals, sell_signals)."""
        buys = sells = 0
        price = context.price
        change = context.change_percent
        rsi = context.rsi
        analysis = context.analysis

        if rsi is not None and rsi < RSI_OVERSOLD:
            buys += 1
        if rsi is not None and rsi > RSI_OVERBOUGHT:
            sells += 1

        if change > MOMENTUM_PCT:
            buys += 1
        if change < -MOMENTUM_PCT:
            sells += 1

        if analysis is not None:
            support = analysis.advanced.support
            resistance = analysis.advanced.resistance
            if support and price <= support * SUPPORT_BAND:
                buys += 1
            if resistance and price >= resistance * RESISTANCE_BAND:
                sells += 1

            roe = analysis.fundamental.return_on_equity
            debt_to_equity = analysis.fundamental.debt_to_equity
            if roe is not None and roe > MIN_ROE:
                buys += 1
            if debt_to_equity is not None and debt_to_equity > MAX_DEBT_TO_EQUITY:
                sells += 1

            rating = analysis.sentiment.analyst_rating
            if rating == "buy":
                buys += 1
            if rating == "sell":
                sells += 1

        return buys, sells

    def decide(self, context: DecisionContext) -> Decision:
        buys, sells = self.count_signals(context)
        buy_ratio = buys / TOTAL_SIGNALS
        sell_ratio = sells / TOTAL_SIGNALS

        advanced = context.analysis.advanced if context.analysis is not None else None
        support = advanced.support if advanced is not None else None
        resistance = advanced.resistance if advanced is not None else None
        rsi = context.rsi

        breakdown = SignalBreakdown(
            buy_signals=buys,
            sell_signals=sells,
            total_signals=TOTAL_SIGNALS,
            buy_ratio=buy_ratio,
            sell_ratio=sell_ratio,
            rsi=rsi,
            support=support,
            resistance=resistance,
        )

        if (
            buy_ratio >= ACTION_RATIO
            and not context.has_position
            and context.cash > context.price * MIN_LOT
        ):
            action = DecisionAction.BUY
            confidence = min(90.0, 60 + buy_ratio * 30)
            rationale = (
                f"Multi-factor buy signals ({buys}/{TOTAL_SIGNALS}), "
                f"RSI: {_fmt(rsi)}, support: {_fmt(support, 2)}"
            )
        elif sell_ratio >= ACTION_RATIO and context.has_position:
            action = DecisionAction.SELL
            confidence = min(85.0, 55 + sell_ratio * 30)
            rationale = (
                f"Multi-factor sell signals ({sells}/{TOTAL_SIGNALS}), "
                f"RSI: {_fmt(rsi)}, resistance: {_fmt(resistance, 2)}"
            )
        else:
            action = DecisionAction.HOLD
            confidence = 50.0
            rationale = (
                f"Insufficient signals, RSI: {_fmt(rsi)}, "
                f"change: {context.change_percent:.1f}%, "
                f"buy signals: {buys}/{TOTAL_SIGNALS}, sell signals: {sells}/{TOTAL_SIGNALS}"
            )

        return self.build_decision(context, action, confidence, rationale, breakdown)

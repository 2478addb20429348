"""
Threshold decision engine.

Config-driven technical strategy: momentum and RSI signals are scored
against the actor's own thresholds and weighted by strength, and the engine
acts when one side's share of all signals reaches signal_sensitivity.
"""

from arena_engine.domain import Decision, DecisionAction, SignalBreakdown
from arena_engine.interfaces.strategy import DecisionContext, DecisionEngine

MIN_ROE = 0.10
MAX_DEBT_TO_EQUITY = 1.0
MIN_LOT = 100


class ThresholdStrategy(DecisionEngine):
    """
    Signal weights:
        momentum beyond threshold: 2, beyond half the threshold: 1
        RSI beyond its threshold: 2, within 10 points of it: 1 (RSI adds 2 to the total)
        near support / resistance: 1
        ROE > 0.10 / debt-to-equity > 1: 1
        analyst buy / sell: 1
    """

    @property
    def name(self) -> str:
        return "threshold"

    def score(self, context: DecisionContext) -> tuple[int, int, int]:
        """Return (buy_signals, sell_signals, total_signals)."""
        cfg = self.config
        change = context.change_percent
        price = context.price
        rsi = context.rsi
        buys = sells = total = 0

        if change > cfg.buy_threshold:
            buys += 2
            total += 2
        elif change > cfg.buy_threshold * 0.5:
            buys += 1
            total += 1

        if change < cfg.sell_threshold:
            sells += 2
            total += 2
        elif change < cfg.sell_threshold * 0.5:
            sells += 1
            total += 1

        if rsi is not None:
            total += 2
            if rsi < cfg.rsi_buy_threshold:
                buys += 2
            elif rsi < cfg.rsi_buy_threshold + 10:
                buys += 1

            if rsi > cfg.rsi_sell_threshold:
                sells += 2
            elif rsi > cfg.rsi_sell_threshold - 10:
                sells += 1

        analysis = context.analysis
        if analysis is not None:
            support = analysis.advanced.support
            resistance = analysis.advanced.resistance
            if support and price <= support * 1.02:
                buys += 1
                total += 1
            if resistance and price >= resistance * 0.98:
                sells += 1
                total += 1

            roe = analysis.fundamental.return_on_equity
            debt_to_equity = analysis.fundamental.debt_to_equity
            if roe is not None and roe > MIN_ROE:
                buys += 1
                total += 1
            if debt_to_equity is not None and debt_to_equity > MAX_DEBT_TO_EQUITY:
                sells += 1
                total += 1

            rating = analysis.sentiment.analyst_rating
            if rating == "buy":
                buys += 1
                total += 1
            if rating == "sell":
                sells += 1
                total += 1

        if total == 0:
            if change > cfg.buy_threshold * 0.5:
                buys = 1
            elif change < cfg.sell_threshold * 0.5:
                sells = 1
            total = 1

        return buys, sells, total

    def decide(self, context: DecisionContext) -> Decision:
        cfg = self.config
        buys, sells, total = self.score(context)
        buy_ratio = buys / total
        sell_ratio = sells / total
        label = cfg.name.upper()
        change = context.change_percent

        breakdown = SignalBreakdown(
            buy_signals=buys,
            sell_signals=sells,
            total_signals=total,
            buy_ratio=buy_ratio,
            sell_ratio=sell_ratio,
            rsi=context.rsi,
            support=context.analysis.advanced.support if context.analysis else None,
            resistance=context.analysis.advanced.resistance if context.analysis else None,
        )

        if (
            buys > 0
            and buy_ratio >= cfg.signal_sensitivity
            and not context.has_position
            and context.cash > context.price * MIN_LOT
        ):
            action = DecisionAction.BUY
            confidence = float(min(90, 60 + buys * 10))
            rationale = (
                f"[{label}] Buy signals ({buys}/{total}, threshold {cfg.signal_sensitivity}), "
                f"change: {change:.2f}%"
            )
        elif sells > 0 and sell_ratio >= cfg.signal_sensitivity and context.has_position:
            action = DecisionAction.SELL
            confidence = float(min(85, 55 + sells * 10))
            rationale = (
                f"[{label}] Sell signals ({sells}/{total}, threshold {cfg.signal_sensitivity}), "
                f"change: {change:.2f}%"
            )
        else:
            action = DecisionAction.HOLD
            confidence = 0.0
            rationale = (
                f"[{label}] Hold, change: {change:.1f}%, "
                f"buy: {buys}/{total}, sell: {sells}/{total} "
                f"(needs {cfg.signal_sensitivity * 100:.0f}%)"
            )

        return self.build_decision(context, action, confidence, rationale, breakdown)

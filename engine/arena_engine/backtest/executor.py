"""
Trade execution for backtesting.

Turns a decision into at most one trade, enforcing solvency, the lot cap and
transaction costs. Pure: nothing here touches actor state.
"""

import math
from dataclasses import dataclass

from arena_engine.domain import (
    ActorState,
    Decision,
    DecisionAction,
    Quote,
    Trade,
    TradeKind,
    decision_id_for,
    money,
    trade_id_for,
)
from arena_engine.errors import StateInvariantViolation
from arena_engine.logging import get_logger

logger = get_logger(__name__)

FEE_RATE = 0.001
MAX_LOT = 100


@dataclass(frozen=True)
class TradeExecutor:
    """
    Simulated execution.

    Fill model:
    - BUY: only without an open position; quantity is
      min(floor(cash / (price * (1 + fee))), max_lot); amount = qty * price * (1 + fee)
    - SELL: only with an open position; always the whole position;
      amount = qty * price * (1 - fee)

    Amounts are rounded to 2 dp. Trade IDs derive from (actor, timestamp,
    symbol) so replays produce identical IDs.
    """

    fee_rate: float = FEE_RATE
    max_lot: int = MAX_LOT

    def execute(self, state: ActorState, decision: Decision, quote: Quote) -> Trade | None:
        """
        Execute a decision against the actor's current state.

        Returns:
            The trade, or None for hold and for buys/sells whose
            preconditions fail.

        Raises:
            StateInvariantViolation: A trade would overdraw cash or oversell
        """
        if decision.action == DecisionAction.BUY:
            return self._buy(state, decision, quote)
        if decision.action == DecisionAction.SELL:
            return self._sell(state, decision, quote)
        return None

    def _buy(self, state: ActorState, decision: Decision, quote: Quote) -> Trade | None:
        if state.has_position(quote.symbol):
            return None

        unit_cost = quote.price * (1 + self.fee_rate)
        affordable = math.floor(state.cash / unit_cost)
        if affordable <= 0:
            logger.debug(
                "%s cannot afford %s at %.2f (cash %.2f)",
                state.actor_id,
                quote.symbol,
                quote.price,
                state.cash,
            )
            return None

        quantity = min(affordable, self.max_lot)
        amount = money(quantity * unit_cost)
        if amount > state.cash:
            raise StateInvariantViolation(
                f"Buy of {quantity} {quote.symbol} for {amount} exceeds cash {state.cash} "
                f"for actor {state.actor_id}"
            )
        return self._trade(state, decision, quote, TradeKind.BUY, quantity, amount)

    def _sell(self, state: ActorState, decision: Decision, quote: Quote) -> Trade | None:
        position = state.position(quote.symbol)
        if position is None:
            return None

        # Partial sells are not supported.
        quantity = position.quantity
        amount = money(quantity * quote.price * (1 - self.fee_rate))
        return self._trade(state, decision, quote, TradeKind.SELL, quantity, amount)

    @staticmethod
    def _trade(
        state: ActorState,
        decision: Decision,
        quote: Quote,
        kind: TradeKind,
        quantity: int,
        amount: float,
    ) -> Trade:
        return Trade(
            id=trade_id_for(state.actor_id, decision.timestamp, quote.symbol),
            actor_id=state.actor_id,
            kind=kind,
            symbol=quote.symbol,
            stock_name=decision.stock_name,
            price=quote.price,
            quantity=quantity,
            amount=amount,
            timestamp=decision.timestamp,
            decision_id=decision_id_for(state.actor_id, decision.timestamp, quote.symbol),
        )

"""
Portfolio accounting for backtesting.

Average-cost positions and mark-to-market valuation. Every function returns
a new ActorState; inputs are never mutated. Monetary outputs are rounded to
2 dp when computed so re-derivation reproduces stored state exactly.

Invariants:
- cash >= 0
- no position with quantity <= 0 is kept
- total_assets == cash + sum(quantity * current_price) (to the cent)
"""

from collections.abc import Mapping, Sequence

from arena_engine.domain import (
    DEFAULT_INITIAL_CASH,
    ActorState,
    Position,
    Snapshot,
    Trade,
    TradeKind,
    money,
)
from arena_engine.errors import StateInvariantViolation
from arena_engine.logging import get_logger

logger = get_logger(__name__)


def _revalue(position: Position, price: float) -> Position:
    profit_loss = (price - position.cost_price) * position.quantity
    profit_loss_percent = (
        (price - position.cost_price) / position.cost_price * 100 if position.cost_price else 0.0
    )
    return position.model_copy(
        update={
            "current_price": price,
            "profit_loss": money(profit_loss),
            "profit_loss_percent": money(profit_loss_percent),
        }
    )


def apply_trade(
    state: ActorState,
    trade: Trade,
    prices: Mapping[str, float] | None = None,
) -> ActorState:
    """
    Apply one trade to an actor's cash and positions.

    Buys into an existing position re-average the cost basis; a new position
    starts at the trade price. Sells reduce the position and remove it at
    zero. P/L is revalued at prices[symbol], falling back to the trade price.

    Raises:
        StateInvariantViolation: Trade belongs to another actor, overdraws
            cash or sells more than is held
    """
    if trade.actor_id != state.actor_id:
        raise StateInvariantViolation(
            f"Trade {trade.id} belongs to {trade.actor_id}, not {state.actor_id}"
        )

    prices = prices or {}
    mark = prices.get(trade.symbol, trade.price)
    existing = state.position(trade.symbol)
    others = [p for p in state.portfolio if p.symbol != trade.symbol]

    if trade.kind == TradeKind.BUY:
        cash = money(state.cash - trade.amount)
        if cash < 0:
            raise StateInvariantViolation(
                f"Trade {trade.id} would leave {state.actor_id} with negative cash {cash}"
            )
        if existing is None:
            position = Position(
                symbol=trade.symbol,
                stock_name=trade.stock_name,
                quantity=trade.quantity,
                cost_price=trade.price,
                current_price=mark,
            )
        else:
            quantity = existing.quantity + trade.quantity
            cost = (existing.cost_price * existing.quantity + trade.price * trade.quantity) / quantity
            position = existing.model_copy(
                update={"quantity": quantity, "cost_price": money(cost)}
            )
        portfolio = [*others, _revalue(position, mark)]

    else:
        if existing is None or trade.quantity > existing.quantity:
            held = existing.quantity if existing else 0
            raise StateInvariantViolation(
                f"Trade {trade.id} sells {trade.quantity} {trade.symbol} but "
                f"{state.actor_id} holds {held}"
            )
        cash = money(state.cash + trade.amount)
        remaining = existing.quantity - trade.quantity
        portfolio = list(others)
        if remaining > 0:
            portfolio.append(_revalue(existing.model_copy(update={"quantity": remaining}), mark))

    return state.model_copy(update={"cash": cash, "portfolio": portfolio})


def mark_to_market(
    state: ActorState,
    prices: Mapping[str, float],
    initial_capital: float,
    timestamp: int,
) -> ActorState:
    """
    Revalue every position and recompute totals.

    Positions without a price this tick are valued at their cost price.
    """
    portfolio = [_revalue(p, prices.get(p.symbol, p.cost_price)) for p in state.portfolio]
    stock_value = sum(p.quantity * p.current_price for p in portfolio)
    total_assets = money(state.cash + stock_value)
    total_return = money(total_assets - initial_capital)
    total_return_percent = money(total_return / initial_capital * 100) if initial_capital else 0.0

    return state.model_copy(
        update={
            "portfolio": portfolio,
            "total_assets": total_assets,
            "total_return": total_return,
            "total_return_percent": total_return_percent,
            "last_update_time": timestamp,
        }
    )


def initial_capital_for(
    actor_id: str,
    snapshots: Sequence[Snapshot],
    default: float = DEFAULT_INITIAL_CASH,
) -> float:
    """Total assets recorded for the actor in the first snapshot, else default."""
    if snapshots:
        state = snapshots[0].state_for(actor_id)
        if state is not None:
            return state.total_assets
    return default


def check_invariants(state: ActorState, tolerance: float = 0.01) -> None:
    """
    Verify cash, positions and total assets for one actor.

    Raises:
        StateInvariantViolation: Any invariant fails
    """
    if state.cash < 0:
        raise StateInvariantViolation(f"{state.actor_id} has negative cash {state.cash}")
    for position in state.portfolio:
        if position.quantity <= 0:
            raise StateInvariantViolation(
                f"{state.actor_id} holds non-positive quantity in {position.symbol}"
            )
    expected = state.cash + sum(p.quantity * p.current_price for p in state.portfolio)
    if abs(state.total_assets - expected) > tolerance:
        raise StateInvariantViolation(
            f"{state.actor_id} total assets {state.total_assets} != {expected:.2f}"
        )

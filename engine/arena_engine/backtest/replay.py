"""
Session replay.

Re-derives every actor's state from the actor configs plus each snapshot's
trades and market data, using the same accounting functions as a live tick.
A stored session is consistent when the replayed states equal the stored
ones exactly.
"""

from dataclasses import dataclass, field

from arena_engine.backtest.portfolio import apply_trade, initial_capital_for, mark_to_market
from arena_engine.domain import ActorState, Session
from arena_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ReplayReport:
    """Outcome of replaying one session."""

    session_id: str
    snapshots: int = 0
    states: dict[str, ActorState] = field(default_factory=dict)
    mismatches: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.mismatches


def replay_session(session: Session) -> ReplayReport:
    """
    Replay a session snapshot by snapshot.

    The first snapshot is the seed: its states are rebuilt from the actor
    configs alone. Every later snapshot applies its own trades in recorded
    order, then marks to market at its own quotes.
    """
    report = ReplayReport(session_id=session.session_id)
    states: dict[str, ActorState] = {}

    for index, snapshot in enumerate(session.snapshots):
        prices = {q.symbol: q.price for q in snapshot.market_data}

        for config in session.actor_configs:
            if index == 0:
                state = ActorState.initial(config, snapshot.timestamp)
            else:
                state = states.get(config.id) or ActorState.initial(config, snapshot.timestamp)
                for trade in snapshot.trades:
                    if trade.actor_id == config.id:
                        state = apply_trade(state, trade, prices)
                capital = initial_capital_for(
                    config.id, session.snapshots[:index], default=config.initial_cash
                )
                state = mark_to_market(state, prices, capital, snapshot.timestamp)
            states[config.id] = state

            stored = snapshot.state_for(config.id)
            if stored is None:
                report.mismatches.append(f"{snapshot.timestamp}: no stored state for {config.id}")
            elif stored != state:
                report.mismatches.append(f"{snapshot.timestamp}: {config.id} differs")

        report.snapshots += 1

    report.states = states
    if report.mismatches:
        logger.warning(
            "Replay of %s found %d mismatches", session.session_id, len(report.mismatches)
        )
    return report

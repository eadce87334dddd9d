"""Virtual ledger holding cash, open positions and rolling risk counters.

The ledger is the only persisted mutable state of the engine. Its methods
keep the invariants that the risk rules rely on: the balance never goes
negative, the number of open positions stays within the configured maximum,
at most one position exists per ``(market_id, side)``, and the outcome
window only remembers the last ten results.
"""

import copy
from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import Decimal

from updown_trader.apps.paper_engine.models import Position
from updown_trader.core.models import ZERO, Outcome, Side
from updown_trader.core.timestamps import utc_date

MAX_RECENT_OUTCOMES = 10


def _empty_positions() -> list[Position]:
    """Create an empty position list."""
    return []


def _empty_outcomes() -> list[Outcome]:
    """Create an empty outcome window."""
    return []


@dataclass
class Ledger:
    """Cash balance, open positions and risk counters of one running engine.

    Args:
        balance: Cash in the virtual account.
        positions: Open positions in opening order.
        daily_realized_net_loss: Net realized loss since the last UTC reset.
            Losses increase it, wins decrease it.
        last_stop_loss_timestamp: When a stop-loss last realized a loss.
        last_entry_timestamp: When a position was last opened.
        last_exit_timestamp: When a position was last closed.
        recent_outcomes: The most recent WIN/LOSS results, oldest first.
        consecutive_losses: Current losing streak.
        last_daily_reset: When the daily counter was last reset.

    """

    balance: Decimal
    positions: list[Position] = field(default_factory=_empty_positions)
    daily_realized_net_loss: Decimal = ZERO
    last_stop_loss_timestamp: int | None = None
    last_entry_timestamp: int | None = None
    last_exit_timestamp: int | None = None
    recent_outcomes: list[Outcome] = field(default_factory=_empty_outcomes)
    consecutive_losses: int = 0
    last_daily_reset: int | None = None

    def copy(self) -> "Ledger":
        """Return an independent deep copy of this ledger."""
        return copy.deepcopy(self)

    def find(self, market_id: str, side: Side) -> Position | None:
        """Return the open position for ``(market_id, side)``, if any."""
        for position in self.positions:
            if position.key == (market_id, side):
                return position
        return None

    def positions_for_market(self, market_id: str) -> Iterator[Position]:
        """Yield the open positions bound to ``market_id``."""
        return (p for p in self.positions if p.market_id == market_id)

    def open(self, position: Position, max_positions: int) -> bool:
        """Debit the cost basis and record a new position.

        Args:
            position: Fully-costed position to add.
            max_positions: Maximum number of simultaneously open positions.

        Returns:
            ``True`` if the position was added, ``False`` when the balance is
            insufficient, the ledger is full, or the same market and side is
            already held. A rejected open leaves the ledger untouched.

        """
        if self.balance < position.cost_basis:
            return False
        if len(self.positions) >= max_positions:
            return False
        if self.find(position.market_id, position.side) is not None:
            return False
        self.balance -= position.cost_basis
        self.positions.append(position)
        self.last_entry_timestamp = position.entry_timestamp
        return True

    def close(
        self,
        position: Position,
        proceeds: Decimal,
        pnl: Decimal,
        *,
        timestamp: int,
        stop_loss: bool = False,
    ) -> None:
        """Credit proceeds, drop the position and update the risk counters.

        A close with ``pnl > 0`` is a win and resets the losing streak; any
        other close counts as a loss. A losing stop-loss close also starts
        the stop-loss cooldown.

        Args:
            position: Open position being closed.
            proceeds: Cash returned to the balance, net of any exit fee.
            pnl: Realized profit or loss against the cost basis.
            timestamp: Unix epoch seconds of the close.
            stop_loss: Whether the close was a stop-loss exit.

        Raises:
            ValueError: If the position is not held by this ledger.

        """
        held = self.find(position.market_id, position.side)
        if held is None:
            msg = f"No open {position.side.value} position for market {position.market_id}"
            raise ValueError(msg)

        self.positions.remove(held)
        self.balance += proceeds
        self.daily_realized_net_loss -= pnl
        if pnl > ZERO:
            self.consecutive_losses = 0
            self._record_outcome(Outcome.WIN)
        else:
            self.consecutive_losses += 1
            self._record_outcome(Outcome.LOSS)
            if stop_loss:
                self.last_stop_loss_timestamp = timestamp
        self.last_exit_timestamp = timestamp

    def _record_outcome(self, outcome: Outcome) -> None:
        """Append an outcome and keep only the most recent window."""
        self.recent_outcomes = [*self.recent_outcomes, outcome][-MAX_RECENT_OUTCOMES:]

    def reset_daily_if_new_utc_day(self, now: int) -> bool:
        """Zero the daily loss counter when the UTC date has changed.

        Args:
            now: Current Unix epoch seconds.

        Returns:
            ``True`` if the counter was reset on this call.

        """
        if self.last_daily_reset is not None and utc_date(self.last_daily_reset) == utc_date(now):
            return False
        self.daily_realized_net_loss = ZERO
        self.last_daily_reset = now
        return True

    def reset_circuit_breaker(self) -> None:
        """Clear the losing streak so entries may resume."""
        self.consecutive_losses = 0

    @property
    def recent_win_rate(self) -> Decimal | None:
        """Return the win rate over the outcome window, or ``None`` if empty."""
        if not self.recent_outcomes:
            return None
        wins = sum(1 for o in self.recent_outcomes if o is Outcome.WIN)
        return Decimal(wins) / Decimal(len(self.recent_outcomes))

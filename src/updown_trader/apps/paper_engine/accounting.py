"""Fee and PnL accounting for opens and closes.

Split every ledger transition into a pure *plan* (amounts, fee, shares, PnL)
and an *apply* step that mutates a ledger and returns the ``TradeEvent``.
Planning first lets the engine evaluate a whole flip before touching the
ledger.
"""

from dataclasses import dataclass
from decimal import Decimal

from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import (
    CloseReason,
    EventType,
    Position,
    TradeEvent,
)
from updown_trader.apps.paper_engine.pricing import fee_for
from updown_trader.core.models import ZERO, Side


@dataclass(frozen=True)
class OpenPlan:
    """Costed entry ready to be applied to a ledger."""

    market_id: str
    side: Side
    price: Decimal
    amount: Decimal
    fee: Decimal
    shares: Decimal
    strike_price: Decimal | None
    reason: str

    @property
    def cost_basis(self) -> Decimal:
        """Return the cash debited on open, fee included."""
        return self.amount + self.fee


@dataclass(frozen=True)
class ClosePlan:
    """Costed exit of one open position."""

    position: Position
    price: Decimal
    reason: CloseReason
    gross_proceeds: Decimal
    fee: Decimal

    @property
    def proceeds(self) -> Decimal:
        """Return the cash credited on close, after the exit fee."""
        return self.gross_proceeds - self.fee

    @property
    def pnl(self) -> Decimal:
        """Return realized profit or loss against the position's cost basis."""
        return self.proceeds - self.position.cost_basis


def plan_open(
    *,
    market_id: str,
    side: Side,
    price: Decimal,
    amount: Decimal,
    fee_pct: Decimal,
    strike_price: Decimal | None,
    reason: str,
) -> OpenPlan:
    """Cost an entry of ``amount`` dollars at normalized ``price``."""
    return OpenPlan(
        market_id=market_id,
        side=side,
        price=price,
        amount=amount,
        fee=fee_for(amount, fee_pct),
        shares=amount / price,
        strike_price=strike_price,
        reason=reason,
    )


def plan_close(
    position: Position,
    price: Decimal,
    reason: CloseReason,
    fee_pct: Decimal,
) -> ClosePlan:
    """Cost the exit of ``position`` at normalized ``price``.

    Settlement closes are redemptions and carry no exit fee.
    """
    gross = position.shares * price
    fee = ZERO if reason.is_settlement else fee_for(gross, fee_pct)
    return ClosePlan(position=position, price=price, reason=reason, gross_proceeds=gross, fee=fee)


def apply_open(
    ledger: Ledger, plan: OpenPlan, *, max_positions: int, timestamp: int
) -> TradeEvent | None:
    """Open the planned position on ``ledger``.

    Returns:
        The ``OPEN`` event, or ``None`` if the ledger rejected the position.

    """
    position = Position(
        market_id=plan.market_id,
        side=plan.side,
        entry_price=plan.price,
        shares=plan.shares,
        cost_basis=plan.cost_basis,
        entry_fee=plan.fee,
        entry_timestamp=timestamp,
        strike_price=plan.strike_price,
        last_mark_price=plan.price,
    )
    if not ledger.open(position, max_positions):
        return None
    return TradeEvent(
        type=EventType.OPEN,
        side=plan.side,
        price=plan.price,
        shares=plan.shares,
        amount=plan.amount,
        fee=plan.fee,
        pnl=None,
        reason=plan.reason,
        balance_after=ledger.balance,
        market_id=plan.market_id,
        timestamp=timestamp,
    )


def apply_close(ledger: Ledger, plan: ClosePlan, *, timestamp: int) -> TradeEvent:
    """Close the planned position on ``ledger`` and return the ``CLOSE`` event."""
    ledger.close(
        plan.position,
        plan.proceeds,
        plan.pnl,
        timestamp=timestamp,
        stop_loss=plan.reason.is_stop_loss,
    )
    return TradeEvent(
        type=EventType.CLOSE,
        side=plan.position.side,
        price=plan.price,
        shares=plan.position.shares,
        amount=plan.proceeds,
        fee=plan.fee,
        pnl=plan.pnl,
        reason=plan.reason.value,
        balance_after=ledger.balance,
        market_id=plan.position.market_id,
        timestamp=timestamp,
    )

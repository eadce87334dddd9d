"""Settlement of positions whose market has expired or rolled over.

A market resolves UP when the spot price finishes at or above the strike and
DOWN otherwise. Winning shares redeem at 1.0 and losing shares at 0.0, with
no exit fee.
"""

import logging
from decimal import Decimal

from updown_trader.apps.paper_engine.accounting import apply_close, plan_close
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import (
    CloseReason,
    EngineConfig,
    MarketSnapshot,
    Position,
    TradeEvent,
)
from updown_trader.core.models import ONE, ZERO, Side

logger = logging.getLogger(__name__)


def settlement_payout(side: Side, strike_price: Decimal, spot_price: Decimal) -> Decimal:
    """Return the per-share redemption value of ``side`` at expiry."""
    if side is Side.UP:
        return ONE if spot_price >= strike_price else ZERO
    return ONE if spot_price < strike_price else ZERO


class ResolutionHandler:
    """Force-settle positions left open on an expired or superseded market.

    Args:
        config: Engine configuration (fee rate for fallback closes).

    """

    def __init__(self, config: EngineConfig) -> None:
        """Initialize the handler."""
        self._config = config

    def settle(self, ledger: Ledger, snapshot: MarketSnapshot, now: int) -> list[TradeEvent]:
        """Settle what the snapshot allows and return the ``CLOSE`` events.

        Positions on the snapshot's market settle when it is flagged expired
        and both strike and spot are known. Positions on any other market
        belong to a market that has rolled over: they settle against the
        strike recorded at entry and the current spot, or, when no strike was
        ever seen, close at their last mark price. A position with neither
        is left open and retried on the next tick.

        Args:
            ledger: Ledger to mutate.
            snapshot: Current market snapshot.
            now: Unix epoch seconds of the tick.

        Returns:
            ``CLOSE`` events for every position settled on this tick.

        """
        events: list[TradeEvent] = []
        for position in list(ledger.positions):
            if position.market_id == snapshot.market_id:
                if not snapshot.is_expired:
                    continue
                event = self._settle_expired(ledger, position, snapshot, now)
            else:
                event = self._settle_rolled_over(ledger, position, snapshot, now)
            if event is not None:
                events.append(event)
        return events

    def _settle_expired(
        self, ledger: Ledger, position: Position, snapshot: MarketSnapshot, now: int
    ) -> TradeEvent | None:
        """Settle a position on the expired current market."""
        strike = snapshot.strike_price
        if strike is None:
            strike = position.strike_price
        if strike is None or snapshot.spot_price is None:
            logger.warning(
                "Market %s expired without strike/spot; cannot settle %s yet",
                snapshot.market_id[:20],
                position.side.value,
            )
            return None
        return self._redeem(ledger, position, strike, snapshot.spot_price, now)

    def _settle_rolled_over(
        self, ledger: Ledger, position: Position, snapshot: MarketSnapshot, now: int
    ) -> TradeEvent | None:
        """Settle a position whose market is no longer the current one."""
        if position.strike_price is not None:
            if snapshot.spot_price is None:
                return None
            return self._redeem(ledger, position, position.strike_price, snapshot.spot_price, now)

        if position.last_mark_price is not None:
            logger.warning(
                "Rolled-over market %s has no recorded strike; closing %s at last mark %.4f",
                position.market_id[:20],
                position.side.value,
                position.last_mark_price,
            )
            plan = plan_close(
                position,
                position.last_mark_price,
                CloseReason.ROLLOVER_CLOSE,
                self._config.fee_pct,
            )
            return apply_close(ledger, plan, timestamp=now)

        logger.warning(
            "Rolled-over market %s: no strike or mark for %s position",
            position.market_id[:20],
            position.side.value,
        )
        return None

    def _redeem(
        self,
        ledger: Ledger,
        position: Position,
        strike: Decimal,
        spot: Decimal,
        now: int,
    ) -> TradeEvent:
        """Redeem ``position`` at its binary payout."""
        payout = settlement_payout(position.side, strike, spot)
        logger.info(
            "Settling %s %s: spot=%s strike=%s payout=%s",
            position.side.value,
            position.market_id[:20],
            spot,
            strike,
            payout,
        )
        plan = plan_close(position, payout, CloseReason.EXPIRY, self._config.fee_pct)
        return apply_close(ledger, plan, timestamp=now)

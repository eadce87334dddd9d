"""Priority-ordered exit cascade for open positions.

On every tick each position on the current market is marked at its side's
quote and run through the cascade: breakeven arming, hard stop-loss,
breakeven protection, half-time cut, early take-profit and the legacy
take-profit targets. The first trigger that matches closes the position;
the other positions are evaluated independently.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from updown_trader.apps.paper_engine.accounting import apply_close, plan_close
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import (
    CloseReason,
    EngineConfig,
    Position,
    TickInput,
    TradeEvent,
)
from updown_trader.apps.paper_engine.pricing import normalize_price, roi_pct
from updown_trader.core.models import ZERO

logger = logging.getLogger(__name__)

_ROI_TAKE_PROFIT_PRICE_CEILING = Decimal("0.75")


@dataclass(frozen=True)
class ExitDecision:
    """Trigger that fired for a position and the price to close it at."""

    reason: CloseReason
    price: Decimal


class ExitEvaluator:
    """Evaluate the exit cascade for every open position on the tick's market.

    Args:
        config: Engine configuration holding the exit thresholds.

    """

    def __init__(self, config: EngineConfig) -> None:
        """Initialize the evaluator with its thresholds."""
        self._config = config

    def evaluate(self, ledger: Ledger, tick: TickInput, now: int) -> list[TradeEvent]:
        """Run the cascade over the ledger's positions and apply any closes.

        Positions bound to another market, or whose side has no usable quote
        on this tick, are skipped.

        Args:
            ledger: Ledger to mutate.
            tick: Current tick.
            now: Unix epoch seconds of the tick.

        Returns:
            ``CLOSE`` events in the order the positions were closed.

        """
        events: list[TradeEvent] = []
        for position in list(ledger.positions):
            if position.market_id != tick.snapshot.market_id:
                continue
            price = normalize_price(tick.prices.for_side(position.side))
            if price is None:
                continue
            position.last_mark_price = price

            decision = self.check(position, price, tick.snapshot.time_remaining_minutes, now)
            if decision is None:
                continue
            plan = plan_close(position, decision.price, decision.reason, self._config.fee_pct)
            events.append(apply_close(ledger, plan, timestamp=now))
        return events

    def check(
        self,
        position: Position,
        price: Decimal,
        time_remaining_minutes: Decimal | None,
        now: int,
    ) -> ExitDecision | None:
        """Return the first exit trigger matching ``position`` at ``price``.

        Arming the breakeven latch is a side effect on ``position`` and never
        closes it by itself. Once armed, any trigger that fires at a
        non-positive ROI closes at the entry price instead of the quote.

        Args:
            position: Open position (its latch may be set).
            price: Normalized current quote for the position's side.
            time_remaining_minutes: Minutes left in the market, if known.
            now: Unix epoch seconds of the tick.

        Returns:
            The matching ``ExitDecision``, or ``None`` to keep holding.

        """
        cfg = self._config
        roi = roi_pct(position.entry_price, price)

        if not position.breakeven_armed and roi >= cfg.breakeven_trigger_roi_pct:
            position.breakeven_armed = True
            logger.info(
                "Breakeven armed: %s %s ROI=%+.1f%%",
                position.side.value,
                position.market_id[:20],
                roi,
            )

        held_seconds = now - position.entry_timestamp
        if roi <= -cfg.stop_loss_roi_pct and held_seconds >= cfg.stop_loss_grace_period_seconds:
            if position.breakeven_armed and roi < ZERO:
                return ExitDecision(CloseReason.STOP_LOSS_BREAKEVEN, position.entry_price)
            return ExitDecision(CloseReason.STOP_LOSS, price)

        if position.breakeven_armed and roi <= ZERO:
            return ExitDecision(CloseReason.STOP_LOSS_BREAKEVEN, position.entry_price)

        if (
            time_remaining_minutes is not None
            and time_remaining_minutes <= cfg.half_time_threshold_minutes
            and roi < ZERO
        ):
            return ExitDecision(CloseReason.HALF_TIME_EXIT, price)

        if price >= cfg.early_take_profit_price or roi >= cfg.early_take_profit_roi_pct:
            return ExitDecision(CloseReason.TAKE_PROFIT_EARLY, price)

        if price >= cfg.take_profit_price:
            return ExitDecision(CloseReason.TAKE_PROFIT_HIGH, price)

        if (
            cfg.take_profit_roi_pct is not None
            and roi >= cfg.take_profit_roi_pct
            and price <= _ROI_TAKE_PROFIT_PRICE_CEILING
        ):
            return ExitDecision(CloseReason.TAKE_PROFIT_ROI, price)

        return None

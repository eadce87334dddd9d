"""Pure per-tick decision function.

``decide`` takes the current ledger and a tick and returns the ledger the
tick produces together with the trade events it emitted. It works on a copy
and never touches the input ledger, so the engine can adopt the result
atomically or drop it if anything goes wrong.

Order of evaluation: daily reset, settlement, exit cascade, entry.
"""

import logging
from dataclasses import dataclass

from updown_trader.apps.paper_engine.accounting import (
    ClosePlan,
    OpenPlan,
    apply_close,
    apply_open,
    plan_close,
    plan_open,
)
from updown_trader.apps.paper_engine.entry_gate import EntryGate, GateContext
from updown_trader.apps.paper_engine.exit_evaluator import ExitEvaluator
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import (
    FLIP_OPEN_REASON,
    OPEN_REASON,
    CloseReason,
    EngineConfig,
    TickInput,
    TradeEvent,
)
from updown_trader.apps.paper_engine.pricing import is_tradable_price, normalize_price
from updown_trader.apps.paper_engine.resolution import ResolutionHandler
from updown_trader.apps.paper_engine.sizing import bet_size
from updown_trader.core.models import SignalAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlipPlan:
    """Close of the held side and open of the opposite side, applied together."""

    close: ClosePlan
    open: OpenPlan


@dataclass(frozen=True)
class EntryPlan:
    """Outcome of the entry phase.

    Exactly one of ``open`` / ``flip`` is set when an entry was approved;
    ``blocked_reason`` is set when a filter or guard rejected it.
    """

    open: OpenPlan | None = None
    flip: FlipPlan | None = None
    blocked_reason: str | None = None


@dataclass(frozen=True)
class TickDecision:
    """Ledger produced by a tick and the events emitted along the way."""

    ledger: Ledger
    events: tuple[TradeEvent, ...]
    blocked_reason: str | None = None


def decide(ledger: Ledger, tick: TickInput, config: EngineConfig, now: int) -> TickDecision:
    """Evaluate one tick against ``ledger`` without mutating it.

    Args:
        ledger: Ledger at the start of the tick.
        tick: Snapshot, prices, signal and trend for this tick.
        config: Engine configuration.
        now: Unix epoch seconds of the tick.

    Returns:
        The resulting ledger, the emitted events, and the entry blocking
        reason if an entry was requested but refused.

    """
    working = ledger.copy()
    if working.reset_daily_if_new_utc_day(now):
        logger.info("New UTC day: daily net loss counter reset")

    events: list[TradeEvent] = []
    events.extend(ResolutionHandler(config).settle(working, tick.snapshot, now))
    events.extend(ExitEvaluator(config).evaluate(working, tick, now))

    entry = plan_entry(working, tick, config, now)
    if entry is not None:
        if entry.flip is not None:
            staged = working.copy()
            flip_events = apply_flip(staged, entry.flip, config=config, now=now)
            if flip_events:
                working = staged
                events.extend(flip_events)
            else:
                entry = EntryPlan(blocked_reason="Flip rejected by ledger")
        elif entry.open is not None:
            event = apply_open(
                working,
                entry.open,
                max_positions=config.max_concurrent_positions,
                timestamp=now,
            )
            if event is not None:
                events.append(event)
            else:
                entry = EntryPlan(blocked_reason="Open rejected by ledger")

    blocked = entry.blocked_reason if entry is not None else None
    return TickDecision(ledger=working, events=tuple(events), blocked_reason=blocked)


def plan_entry(
    ledger: Ledger, tick: TickInput, config: EngineConfig, now: int
) -> EntryPlan | None:
    """Plan the entry requested by the tick's signal.

    A signal for the side opposite to a held position on the same market is
    planned as a flip: the held position's close is costed first and the
    gate sees the balance and slot count the open leg would find.

    Returns:
        ``None`` when no entry was requested or the inputs do not allow a
        decision (missing side or quote, expired market), otherwise an
        ``EntryPlan`` that is either approved or carries a blocking reason.

    """
    signal = tick.signal
    if signal.action is not SignalAction.ENTER or signal.side is None:
        return None
    if tick.snapshot.is_expired:
        return EntryPlan(blocked_reason="Market expired")

    side = signal.side
    market_id = tick.snapshot.market_id
    price = normalize_price(tick.prices.for_side(side))
    if price is None or not is_tradable_price(price):
        logger.debug("No tradable %s quote on %s; entry skipped", side.value, market_id[:20])
        return None

    flip_close = _plan_flip_close(ledger, tick, config)
    if isinstance(flip_close, str):
        return EntryPlan(blocked_reason=flip_close)

    balance = ledger.balance
    open_positions = len(ledger.positions)
    if flip_close is not None:
        balance += flip_close.proceeds
        open_positions -= 1

    size = bet_size(
        signal.probability,
        price,
        balance,
        kelly_fraction_multiplier=config.kelly_fraction,
        min_bet=config.min_bet,
        max_bet=config.max_bet,
    )
    ctx = GateContext(
        ledger=ledger,
        config=config,
        market_id=market_id,
        side=side,
        price=price,
        trend=tick.trend,
        time_remaining_minutes=tick.snapshot.time_remaining_minutes,
        now=now,
        size=size,
        balance=balance,
        open_positions=open_positions,
    )
    reason = EntryGate().blocking_reason(ctx)
    if reason is not None:
        return EntryPlan(blocked_reason=reason)

    open_plan = plan_open(
        market_id=market_id,
        side=side,
        price=price,
        amount=size,
        fee_pct=config.fee_pct,
        strike_price=tick.snapshot.strike_price,
        reason=FLIP_OPEN_REASON if flip_close is not None else OPEN_REASON,
    )
    if flip_close is not None:
        return EntryPlan(flip=FlipPlan(close=flip_close, open=open_plan))
    return EntryPlan(open=open_plan)


def _plan_flip_close(
    ledger: Ledger, tick: TickInput, config: EngineConfig
) -> ClosePlan | str | None:
    """Cost the close of a held opposite position, or explain why a flip is refused.

    Returns:
        ``None`` when nothing is held on the other side, a ``ClosePlan`` for
        the held position, or a blocking reason string.

    """
    side = tick.signal.side
    if side is None:
        return None
    held = ledger.find(tick.snapshot.market_id, side.opposite)
    if held is None:
        return None

    held_price = normalize_price(tick.prices.for_side(held.side))
    if held_price is None:
        return f"Flip blocked: no {held.side.value} quote"
    guard = config.flip_guard_price
    if guard is not None and held_price > guard:
        return f"Flip blocked: holding {held.side.value} at {held_price:.2f} (> {guard})"
    return plan_close(held, held_price, CloseReason.FLIP_CLOSE, config.fee_pct)


def apply_flip(
    ledger: Ledger, flip: FlipPlan, *, config: EngineConfig, now: int
) -> list[TradeEvent]:
    """Apply both legs of a flip to ``ledger``.

    Callers pass a staged copy: when the open leg is rejected the returned
    list is empty and the staged ledger must be discarded.
    """
    close_event = apply_close(ledger, flip.close, timestamp=now)
    open_event = apply_open(
        ledger,
        flip.open,
        max_positions=config.max_concurrent_positions,
        timestamp=now,
    )
    if open_event is None:
        return []
    logger.info(
        "Flipped %s -> %s on %s",
        flip.close.position.side.value,
        flip.open.side.value,
        flip.open.market_id[:20],
    )
    return [close_event, open_event]

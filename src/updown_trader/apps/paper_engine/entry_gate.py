"""Ordered entry filters that decide whether a new position may be opened.

Each filter is a plain function taking a ``GateContext`` and returning
``None`` to pass or a short human-readable blocking reason. ``EntryGate``
runs them in order and stops at the first reason, so the reason reported to
the operator is always the highest-priority one.
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import EngineConfig
from updown_trader.apps.paper_engine.pricing import fee_for
from updown_trader.core.models import ZERO, Side, Trend

_SECONDS_PER_MINUTE = 60


@dataclass(frozen=True)
class GateContext:
    """Inputs the entry filters evaluate.

    ``balance`` and ``open_positions`` are the values the new entry would
    see: for a flip they already account for the planned close of the held
    opposite position.

    Args:
        ledger: Ledger as of the start of the entry phase (read-only use).
        config: Engine configuration.
        market_id: Market the entry targets.
        side: Requested outcome.
        price: Normalized entry price.
        trend: Trend label of the tick.
        time_remaining_minutes: Minutes left in the market, if known.
        now: Unix epoch seconds of the tick.
        size: Trade amount computed by the sizing model.
        balance: Cash available to the entry.
        open_positions: Number of positions open when the entry is applied.

    """

    ledger: Ledger
    config: EngineConfig
    market_id: str
    side: Side
    price: Decimal
    trend: Trend
    time_remaining_minutes: Decimal | None
    now: int
    size: Decimal
    balance: Decimal
    open_positions: int


GateFilter = Callable[[GateContext], str | None]


def price_band_filter(ctx: GateContext) -> str | None:
    """Block entries priced outside ``[min_entry_price, max_entry_price]``."""
    low, high = ctx.config.min_entry_price, ctx.config.max_entry_price
    if ctx.price < low or ctx.price > high:
        return f"Price {ctx.price:.2f} out of range ({low}-{high})"
    return None


def circuit_breaker_filter(ctx: GateContext) -> str | None:
    """Block all entries once the losing streak reaches the configured limit."""
    if ctx.ledger.consecutive_losses >= ctx.config.max_consecutive_losses:
        return f"Circuit breaker ({ctx.ledger.consecutive_losses} consecutive losses)"
    return None


def duplicate_market_filter(ctx: GateContext) -> str | None:
    """Block a second position on the same market and side."""
    if ctx.ledger.find(ctx.market_id, ctx.side) is not None:
        return f"Duplicate position ({ctx.side.value} already held)"
    return None


def daily_loss_filter(ctx: GateContext) -> str | None:
    """Block entries once the day's net realized loss reaches the limit."""
    if ctx.ledger.daily_realized_net_loss >= ctx.config.daily_loss_limit:
        return "Daily Loss Limit"
    return None


def stop_loss_cooldown_filter(ctx: GateContext) -> str | None:
    """Block entries for ``cooldown_minutes`` after a losing stop-loss."""
    last = ctx.ledger.last_stop_loss_timestamp
    if last is None:
        return None
    cooldown_seconds = ctx.config.cooldown_minutes * _SECONDS_PER_MINUTE
    elapsed = ctx.now - last
    if elapsed < cooldown_seconds:
        remaining = math.ceil((cooldown_seconds - elapsed) / _SECONDS_PER_MINUTE)
        return f"Cooldown ({remaining}m)"
    return None


def entry_debounce_filter(ctx: GateContext) -> str | None:
    """Block entries within ``entry_cooldown_seconds`` of the previous one."""
    last = ctx.ledger.last_entry_timestamp
    if last is None:
        return None
    elapsed = ctx.now - last
    if elapsed < ctx.config.entry_cooldown_seconds:
        return f"Entry Cooldown ({ctx.config.entry_cooldown_seconds - elapsed}s)"
    return None


def trend_filter(ctx: GateContext) -> str | None:
    """Block entries that fight the prevailing trend."""
    if ctx.trend is Trend.FALLING and ctx.side is Side.UP:
        return "Trend (Falling vs Up)"
    if ctx.trend is Trend.RISING and ctx.side is Side.DOWN:
        return "Trend (Rising vs Down)"
    return None


def entry_deadline_filter(ctx: GateContext) -> str | None:
    """Block entries in the last ``entry_deadline_minutes`` of a market."""
    remaining = ctx.time_remaining_minutes
    if remaining is not None and remaining < ctx.config.entry_deadline_minutes:
        return f"Entry deadline ({remaining:.1f}m left)"
    return None


def capacity_filter(ctx: GateContext) -> str | None:
    """Block entries when no slot is free or the balance cannot cover the cost."""
    limit = ctx.config.max_concurrent_positions
    if ctx.open_positions >= limit:
        return f"Max positions ({ctx.open_positions}/{limit})"
    cost = ctx.size + fee_for(ctx.size, ctx.config.fee_pct)
    if ctx.size <= ZERO or ctx.balance < cost:
        return "Insufficient Balance"
    return None


DEFAULT_FILTERS: tuple[GateFilter, ...] = (
    price_band_filter,
    circuit_breaker_filter,
    duplicate_market_filter,
    daily_loss_filter,
    stop_loss_cooldown_filter,
    entry_debounce_filter,
    trend_filter,
    entry_deadline_filter,
    capacity_filter,
)


class EntryGate:
    """Short-circuiting pipeline of entry filters.

    Args:
        filters: Filters in priority order. Defaults to ``DEFAULT_FILTERS``.

    """

    def __init__(self, filters: Sequence[GateFilter] = DEFAULT_FILTERS) -> None:
        """Initialize the gate with an ordered filter sequence."""
        self._filters = tuple(filters)

    def blocking_reason(self, ctx: GateContext) -> str | None:
        """Return the first filter's blocking reason, or ``None`` if all pass."""
        for check in self._filters:
            reason = check(ctx)
            if reason is not None:
                return reason
        return None

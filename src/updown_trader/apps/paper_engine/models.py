"""Data models for the up/down paper trading engine.

Define the immutable value objects that flow through a tick (the market
snapshot, quoted prices, directional signal and trend, bundled as a
``TickInput``), the engine configuration, the mutable ``Position`` held by the
ledger, and the ``TradeEvent`` records the engine emits for collaborators.
"""

import logging
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from updown_trader.core.models import ZERO, Side, SignalAction, Trend

logger = logging.getLogger(__name__)

_DEFAULT_INITIAL_BALANCE = Decimal(100)
_DEFAULT_FEE_PCT = Decimal(2)
_DEFAULT_STOP_LOSS_ROI_PCT = Decimal(20)
_DEFAULT_TAKE_PROFIT_PRICE = Decimal("0.95")
_DEFAULT_BREAKEVEN_TRIGGER_ROI_PCT = Decimal(30)
_DEFAULT_HALF_TIME_THRESHOLD_MINUTES = Decimal("7.5")
_DEFAULT_EARLY_TAKE_PROFIT_PRICE = Decimal("0.92")
_DEFAULT_EARLY_TAKE_PROFIT_ROI_PCT = Decimal(80)
_DEFAULT_KELLY_FRACTION = Decimal("0.25")
_DEFAULT_MIN_BET = Decimal(5)
_DEFAULT_MAX_BET = Decimal(10)
_DEFAULT_MAX_CONCURRENT_POSITIONS = 2
_DEFAULT_COOLDOWN_MINUTES = Decimal(2)
_DEFAULT_ENTRY_COOLDOWN_SECONDS = 15
_DEFAULT_STOP_LOSS_GRACE_SECONDS = 15
_DEFAULT_DAILY_LOSS_LIMIT = Decimal(100)
_DEFAULT_MAX_CONSECUTIVE_LOSSES = 5
_DEFAULT_MIN_ENTRY_PRICE = Decimal("0.40")
_DEFAULT_MAX_ENTRY_PRICE = Decimal("0.60")
_DEFAULT_ENTRY_DEADLINE_MINUTES = Decimal(4)

_INT_FIELDS = frozenset(
    {
        "max_concurrent_positions",
        "entry_cooldown_seconds",
        "stop_loss_grace_period_seconds",
        "max_consecutive_losses",
    }
)
_OPTIONAL_FIELDS = frozenset({"take_profit_roi_pct", "flip_guard_price"})


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration for the paper trading engine.

    All monetary and percentage values use ``Decimal``. Percentages are
    expressed in percent (``2`` means 2%), prices on the normalized [0, 1]
    probability scale.

    Args:
        initial_balance: Starting virtual cash when no persisted state exists.
        fee_pct: Proportional fee charged on every open and non-settlement close.
        take_profit_roi_pct: Optional ROI% take-profit applied while the price
            is still below 0.75. ``None`` disables it.
        stop_loss_roi_pct: Hard stop-loss distance in ROI%.
        take_profit_price: Normalized price that always takes profit.
        breakeven_trigger_roi_pct: ROI% that arms the breakeven latch.
        half_time_threshold_minutes: Remaining minutes below which losing
            positions are cut.
        early_take_profit_price: Normalized price that locks a near-certain win.
        early_take_profit_roi_pct: ROI% that locks a large win.
        kelly_fraction: Fractional Kelly multiplier (0.25 = quarter-Kelly).
        min_bet: Smallest trade amount in USD.
        max_bet: Largest trade amount in USD (the base unit).
        max_concurrent_positions: Maximum number of simultaneously open positions.
        cooldown_minutes: Entry lockout after a losing stop-loss close.
        entry_cooldown_seconds: Minimum spacing between two entries.
        stop_loss_grace_period_seconds: Age a position must reach before the
            hard stop can fire.
        daily_loss_limit: Net realized loss per UTC day that halts entries.
        max_consecutive_losses: Losing streak that trips the circuit breaker.
        min_entry_price: Lowest normalized price accepted for an entry.
        max_entry_price: Highest normalized price accepted for an entry.
        entry_deadline_minutes: No entries when fewer minutes remain in the market.
        flip_guard_price: Held-side price above which a flip is vetoed.
            ``None`` disables the guard.

    Raises:
        ValueError: If the bounds are inconsistent.

    """

    initial_balance: Decimal = _DEFAULT_INITIAL_BALANCE
    fee_pct: Decimal = _DEFAULT_FEE_PCT
    take_profit_roi_pct: Decimal | None = None
    stop_loss_roi_pct: Decimal = _DEFAULT_STOP_LOSS_ROI_PCT
    take_profit_price: Decimal = _DEFAULT_TAKE_PROFIT_PRICE
    breakeven_trigger_roi_pct: Decimal = _DEFAULT_BREAKEVEN_TRIGGER_ROI_PCT
    half_time_threshold_minutes: Decimal = _DEFAULT_HALF_TIME_THRESHOLD_MINUTES
    early_take_profit_price: Decimal = _DEFAULT_EARLY_TAKE_PROFIT_PRICE
    early_take_profit_roi_pct: Decimal = _DEFAULT_EARLY_TAKE_PROFIT_ROI_PCT
    kelly_fraction: Decimal = _DEFAULT_KELLY_FRACTION
    min_bet: Decimal = _DEFAULT_MIN_BET
    max_bet: Decimal = _DEFAULT_MAX_BET
    max_concurrent_positions: int = _DEFAULT_MAX_CONCURRENT_POSITIONS
    cooldown_minutes: Decimal = _DEFAULT_COOLDOWN_MINUTES
    entry_cooldown_seconds: int = _DEFAULT_ENTRY_COOLDOWN_SECONDS
    stop_loss_grace_period_seconds: int = _DEFAULT_STOP_LOSS_GRACE_SECONDS
    daily_loss_limit: Decimal = _DEFAULT_DAILY_LOSS_LIMIT
    max_consecutive_losses: int = _DEFAULT_MAX_CONSECUTIVE_LOSSES
    min_entry_price: Decimal = _DEFAULT_MIN_ENTRY_PRICE
    max_entry_price: Decimal = _DEFAULT_MAX_ENTRY_PRICE
    entry_deadline_minutes: Decimal = _DEFAULT_ENTRY_DEADLINE_MINUTES
    flip_guard_price: Decimal | None = None

    def __post_init__(self) -> None:
        """Validate that the configured bounds are consistent."""
        if self.initial_balance < ZERO:
            msg = f"initial_balance must be non-negative, got {self.initial_balance}"
            raise ValueError(msg)
        if self.fee_pct < ZERO:
            msg = f"fee_pct must be non-negative, got {self.fee_pct}"
            raise ValueError(msg)
        if not (ZERO <= self.min_bet <= self.max_bet):
            msg = f"expected 0 <= min_bet <= max_bet, got {self.min_bet} and {self.max_bet}"
            raise ValueError(msg)
        if self.min_entry_price > self.max_entry_price:
            msg = (
                f"min_entry_price {self.min_entry_price} exceeds "
                f"max_entry_price {self.max_entry_price}"
            )
            raise ValueError(msg)
        if self.max_concurrent_positions < 1:
            msg = f"max_concurrent_positions must be >= 1, got {self.max_concurrent_positions}"
            raise ValueError(msg)

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "EngineConfig":
        """Build a config from a settings section, coercing string values.

        Values substituted from the environment arrive as strings, so every
        recognised key is converted to the field's type. Unknown keys are
        logged and ignored; ``None`` or an empty string keeps the default
        (or disables an optional threshold).

        Args:
            values: Mapping such as the ``paper_engine`` settings section.

        Returns:
            A validated ``EngineConfig``.

        Raises:
            ValueError: If a value cannot be converted or bounds are inconsistent.

        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, raw in values.items():
            if key not in known:
                logger.warning("Ignoring unknown engine setting %r", key)
                continue
            if raw is None or raw == "":
                if key in _OPTIONAL_FIELDS:
                    kwargs[key] = None
                continue
            try:
                kwargs[key] = int(raw) if key in _INT_FIELDS else Decimal(str(raw))
            except (ValueError, InvalidOperation) as exc:
                msg = f"Invalid value for {key}: {raw!r}"
                raise ValueError(msg) from exc
        return cls(**kwargs)


class EventType(Enum):
    """Kind of ledger transition reported in a ``TradeEvent``."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"


class CloseReason(Enum):
    """Why a position was closed."""

    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_BREAKEVEN = "STOP_LOSS_BREAKEVEN"
    HALF_TIME_EXIT = "HALF_TIME_EXIT"
    TAKE_PROFIT_EARLY = "TAKE_PROFIT_EARLY"
    TAKE_PROFIT_HIGH = "TAKE_PROFIT_HIGH"
    TAKE_PROFIT_ROI = "TAKE_PROFIT_ROI"
    FLIP_CLOSE = "FLIP_CLOSE"
    EXPIRY = "EXPIRY"
    ROLLOVER_CLOSE = "ROLLOVER_CLOSE"

    @property
    def is_settlement(self) -> bool:
        """Return whether this close is a fee-free redemption."""
        return self is CloseReason.EXPIRY

    @property
    def is_stop_loss(self) -> bool:
        """Return whether this close arms the stop-loss cooldown when it loses."""
        return self in (CloseReason.STOP_LOSS, CloseReason.STOP_LOSS_BREAKEVEN)


OPEN_REASON = "ENTRY"
FLIP_OPEN_REASON = "FLIP_OPEN"


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time state of the current expiry-bound market.

    Args:
        market_id: Identifier of the specific market instance.
        is_expired: Whether the market has reached its expiry.
        strike_price: Reference price the market settles against.
        spot_price: Current price of the underlying.
        time_remaining_minutes: Minutes left until expiry.

    """

    market_id: str
    is_expired: bool = False
    strike_price: Decimal | None = None
    spot_price: Decimal | None = None
    time_remaining_minutes: Decimal | None = None


@dataclass(frozen=True)
class Prices:
    """Quoted UP/DOWN token prices on either the [0, 1] or [0, 100] scale."""

    up: Decimal | None = None
    down: Decimal | None = None

    def for_side(self, side: Side) -> Decimal | None:
        """Return the raw quote for the given outcome."""
        return self.up if side is Side.UP else self.down


@dataclass(frozen=True)
class TradeSignal:
    """Directional signal produced by the upstream scoring heuristic.

    Args:
        action: ``ENTER`` to request a position, ``HOLD`` otherwise.
        side: Requested outcome, if any.
        probability: Model probability that ``side`` wins.
        edge: Model probability minus market price.
        strength: Signal strength reported by the heuristic.

    """

    action: SignalAction = SignalAction.HOLD
    side: Side | None = None
    probability: Decimal | None = None
    edge: Decimal | None = None
    strength: Decimal | None = None


@dataclass(frozen=True)
class TickInput:
    """Everything the engine consumes on one tick.

    Args:
        snapshot: Current market state.
        prices: UP/DOWN quotes.
        signal: Directional signal.
        trend: Trend label from the indicator stack.
        timestamp: Unix epoch seconds of the tick. ``None`` means "now"
            according to the engine's clock.

    """

    snapshot: MarketSnapshot
    prices: Prices = Prices()
    signal: TradeSignal = TradeSignal()
    trend: Trend = Trend.NEUTRAL
    timestamp: int | None = None


@dataclass
class Position:
    """Mutable open bet held by the ledger.

    ``cost_basis`` includes the entry fee and never changes after the open;
    ``shares * entry_price`` equals ``cost_basis - entry_fee``. Only the
    breakeven latch and the last mark price change while the position is open.
    """

    market_id: str
    side: Side
    entry_price: Decimal
    shares: Decimal
    cost_basis: Decimal
    entry_fee: Decimal
    entry_timestamp: int
    strike_price: Decimal | None = None
    breakeven_armed: bool = False
    last_mark_price: Decimal | None = None

    @property
    def key(self) -> tuple[str, Side]:
        """Return the ``(market_id, side)`` pair that identifies this position."""
        return (self.market_id, self.side)


@dataclass(frozen=True)
class TradeEvent:
    """Record of an open or close, emitted for logging and notification.

    Args:
        type: ``OPEN`` or ``CLOSE``.
        side: Outcome traded.
        price: Normalized execution price (settlement payout for expiries).
        shares: Outcome tokens traded.
        amount: Trade amount before fee on opens, proceeds after fee on closes.
        fee: Fee charged on this leg.
        pnl: Realized profit or loss for closes, ``None`` for opens.
        reason: Entry or close reason.
        balance_after: Ledger balance after the transition.
        market_id: Market the position belongs to.
        timestamp: Unix epoch seconds of the transition.

    """

    type: EventType
    side: Side
    price: Decimal
    shares: Decimal
    amount: Decimal
    fee: Decimal
    pnl: Decimal | None
    reason: str
    balance_after: Decimal
    market_id: str
    timestamp: int

    @property
    def is_win(self) -> bool:
        """Return whether this is a close that realized a profit."""
        return self.type is EventType.CLOSE and self.pnl is not None and self.pnl > ZERO

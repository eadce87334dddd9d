"""Core value types shared across the paper trader.

Define the decimal constants and the small enums (outcome side, trend label,
signal action, trade outcome) that flow between the engine, its persistence
layer, and the collaborators that consume trade events.
"""

from decimal import Decimal
from enum import Enum

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)


class Side(Enum):
    """Outcome token of an up/down market: UP (spot >= strike) or DOWN."""

    UP = "UP"
    DOWN = "DOWN"

    @property
    def opposite(self) -> "Side":
        """Return the complementary outcome."""
        return Side.DOWN if self is Side.UP else Side.UP


class Trend(Enum):
    """Trend label attached to each tick by the upstream indicator stack."""

    RISING = "RISING"
    FALLING = "FALLING"
    NEUTRAL = "NEUTRAL"


class SignalAction(Enum):
    """Action recommended by the directional signal."""

    ENTER = "ENTER"
    HOLD = "HOLD"


class Outcome(Enum):
    """Result of a closed position, kept in the rolling outcome window."""

    WIN = "WIN"
    LOSS = "LOSS"

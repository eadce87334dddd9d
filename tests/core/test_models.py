"""Tests for core value types."""

from decimal import Decimal

from updown_trader.core.models import HUNDRED, ONE, ZERO, Outcome, Side, SignalAction, Trend


class TestConstants:
    """Tests for the shared decimal constants."""

    def test_values(self) -> None:
        """Constants hold exact decimal values."""
        assert Decimal(0) == ZERO
        assert Decimal(1) == ONE
        assert Decimal(100) == HUNDRED


class TestSide:
    """Tests for the Side enum."""

    def test_values_round_trip_through_strings(self) -> None:
        """Side values are the persisted UP/DOWN strings."""
        assert Side("UP") is Side.UP
        assert Side("DOWN") is Side.DOWN

    def test_opposite_is_an_involution(self) -> None:
        """Taking the opposite twice returns the original side."""
        for side in Side:
            assert side.opposite.opposite is side
            assert side.opposite is not side


class TestLabels:
    """Tests for the trend, action and outcome labels."""

    def test_trend_members(self) -> None:
        """Three trend labels exist."""
        assert {t.value for t in Trend} == {"RISING", "FALLING", "NEUTRAL"}

    def test_signal_actions(self) -> None:
        """Signals either request an entry or hold."""
        assert {a.value for a in SignalAction} == {"ENTER", "HOLD"}

    def test_outcomes(self) -> None:
        """Closed positions are recorded as WIN or LOSS."""
        assert Outcome("WIN") is Outcome.WIN
        assert Outcome("LOSS") is Outcome.LOSS

"""Tests for price normalization and return arithmetic."""

from decimal import Decimal

import pytest

from updown_trader.apps.paper_engine.pricing import (
    fee_for,
    is_tradable_price,
    normalize_price,
    roi_pct,
)
from updown_trader.core.models import ONE


class TestNormalizePrice:
    """Tests for normalize_price."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (Decimal("0.55"), Decimal("0.55")),
            (Decimal(55), Decimal("0.55")),
            (Decimal("1.05"), Decimal("1.05")),
            (Decimal("99.5"), Decimal("0.995")),
            (Decimal(0), Decimal(0)),
        ],
    )
    def test_scales(self, raw: Decimal, expected: Decimal) -> None:
        """Quotes above 1.05 are read as cents; others pass through."""
        assert normalize_price(raw) == expected

    def test_cents_above_one_hundred_are_capped(self) -> None:
        """A cents quote above 100 never normalizes above 1."""
        assert normalize_price(Decimal(150)) == ONE

    def test_none_passes_through(self) -> None:
        """A missing quote stays missing."""
        assert normalize_price(None) is None

    @pytest.mark.parametrize("raw", [Decimal("0.37"), Decimal(42), Decimal(250)])
    def test_idempotent(self, raw: Decimal) -> None:
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_price(raw)
        assert normalize_price(once) == once


class TestIsTradablePrice:
    """Tests for is_tradable_price."""

    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (Decimal("0.5"), True),
            (Decimal("0.01"), True),
            (Decimal(0), False),
            (Decimal(1), False),
            (Decimal("-0.1"), False),
            (None, False),
        ],
    )
    def test_open_unit_interval(
        self,
        price: Decimal | None,
        expected: bool,  # noqa: FBT001
    ) -> None:
        """Only prices strictly inside (0, 1) are tradable."""
        assert is_tradable_price(price) is expected


class TestRoiAndFees:
    """Tests for roi_pct and fee_for."""

    def test_roi_gain(self) -> None:
        """A move from 0.50 to 0.65 is a 30% return."""
        assert roi_pct(Decimal("0.50"), Decimal("0.65")) == Decimal(30)

    def test_roi_loss(self) -> None:
        """A move from 0.50 to 0.40 is a -20% return."""
        assert roi_pct(Decimal("0.50"), Decimal("0.40")) == Decimal(-20)

    def test_fee(self) -> None:
        """A 2% fee on $10 is $0.20."""
        assert fee_for(Decimal(10), Decimal(2)) == Decimal("0.2")

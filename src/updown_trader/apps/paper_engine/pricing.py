"""Price normalization and return arithmetic for binary outcome tokens.

Quotes may arrive on a [0, 1] probability scale or a [0, 100] cents scale.
Every stored or compared price goes through ``normalize_price`` first.
"""

from decimal import Decimal

from updown_trader.core.models import HUNDRED, ONE, ZERO

_CENTS_THRESHOLD = Decimal("1.05")


def normalize_price(price: Decimal | None) -> Decimal | None:
    """Return a quote on the [0, 1] scale.

    A quote above 1.05 is treated as cents and divided by 100 (capped at 1);
    anything else is assumed to be normalized already. ``None`` passes through.
    """
    if price is None:
        return None
    if price > _CENTS_THRESHOLD:
        return min(price / HUNDRED, ONE)
    return price


def is_tradable_price(price: Decimal | None) -> bool:
    """Return whether a normalized price lies strictly between 0 and 1."""
    return price is not None and ZERO < price < ONE


def roi_pct(entry_price: Decimal, current_price: Decimal) -> Decimal:
    """Return the percentage return of ``current_price`` over ``entry_price``."""
    return (current_price - entry_price) / entry_price * HUNDRED


def fee_for(notional: Decimal, fee_pct: Decimal) -> Decimal:
    """Return the proportional fee on a traded notional."""
    return notional * fee_pct / HUNDRED

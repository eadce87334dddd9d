"""Fractional-Kelly bet sizing for binary outcome entries.

Provide a pure function that turns the signal's win probability and the
entry price into a dollar amount, clamped between the configured minimum and
maximum bet and never above the available balance.
"""

from decimal import Decimal

from updown_trader.core.models import ONE, ZERO


def kelly_fraction(probability: Decimal, price: Decimal, *, fractional: Decimal) -> Decimal:
    """Return the scaled Kelly fraction for buying an outcome at ``price``.

    With net odds ``b = (1 - price) / price`` the full Kelly stake is
    ``p - q / b``. The result is multiplied by ``fractional`` and may be
    negative when the price is too expensive for the estimated probability.

    Args:
        probability: Estimated probability that the outcome wins (0-1).
        price: Normalized outcome price, strictly between 0 and 1.
        fractional: Kelly multiplier (e.g. 0.25 for quarter-Kelly).

    Returns:
        Fraction of bankroll to wager; zero or negative means no edge.

    """
    if price <= ZERO or price >= ONE:
        return ZERO
    odds = (ONE - price) / price
    full_kelly = probability - (ONE - probability) / odds
    return full_kelly * fractional


def bet_size(
    probability: Decimal | None,
    price: Decimal,
    balance: Decimal,
    *,
    kelly_fraction_multiplier: Decimal,
    min_bet: Decimal,
    max_bet: Decimal,
) -> Decimal:
    """Return the trade amount for a candidate entry.

    Without a probability the base unit ``max_bet`` is used. With one, a
    positive Kelly fraction sizes the bet at ``balance * f`` clamped to
    ``[min_bet, max_bet]``; a non-positive fraction still places a ``min_bet``
    probe so a signalled entry is never silently dropped. The amount is always
    capped at ``balance`` and is never negative.

    Args:
        probability: Signal's win probability, or ``None`` when not supplied.
        price: Normalized entry price.
        balance: Cash available for the entry.
        kelly_fraction_multiplier: Fractional Kelly multiplier.
        min_bet: Smallest amount to commit.
        max_bet: Largest amount to commit.

    Returns:
        Amount in USD within ``[0, min(balance, max_bet)]``.

    """
    if probability is None:
        size = max_bet
    else:
        fraction = kelly_fraction(probability, price, fractional=kelly_fraction_multiplier)
        if fraction > ZERO:
            size = min(max(balance * fraction, min_bet), max_bet)
        else:
            size = min_bet
    return max(ZERO, min(size, balance, max_bet))

"""Replay recorded ticks through the paper engine.

A tick file is JSON Lines, one record per tick::

    {"timestamp": 1700000000,
     "snapshot": {"market_id": "btc-updown-15m-1700000000", "is_expired": false,
                  "strike_price": 37000, "spot_price": 37012.5,
                  "time_remaining_minutes": 12.3},
     "prices": {"up": 0.52, "down": 0.48},
     "signal": {"action": "ENTER", "side": "UP", "probability": 0.6},
     "trend": "RISING"}

Keys may also be camelCase (``marketId``, ``isExpired``, ``strikePrice``,
``spotPrice``, ``timeRemainingMinutes``). Fields that are missing or cannot be
parsed become ``None`` so the engine skips the checks that depend on them.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from updown_trader.apps.paper_engine.engine import PaperTradingEngine
from updown_trader.apps.paper_engine.models import (
    EventType,
    MarketSnapshot,
    Prices,
    TickInput,
    TradeEvent,
    TradeSignal,
)
from updown_trader.apps.paper_engine.protocols import TradeEventSink
from updown_trader.apps.paper_engine.session import TradingSession
from updown_trader.core.models import ZERO, Side, SignalAction, Trend
from updown_trader.core.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

_MS_THRESHOLD = 10_000_000_000


def _empty_metrics() -> dict[str, Decimal]:
    """Create an empty metrics dictionary."""
    return {}


@dataclass(frozen=True)
class ReplayResult:
    """Summary of a replay run.

    Args:
        initial_balance: Ledger balance before the first tick.
        final_balance: Ledger balance after the last tick.
        events: Every trade event emitted, in order.
        ticks_processed: Number of ticks fed to the engine.
        metrics: Performance metrics (total_return, win_rate, etc.).

    """

    initial_balance: Decimal
    final_balance: Decimal
    events: tuple[TradeEvent, ...]
    ticks_processed: int
    metrics: dict[str, Decimal] = field(default_factory=_empty_metrics)


def _section(record: dict[str, Any], key: str) -> dict[str, Any]:
    """Return a nested object of ``record``, or an empty one if absent or malformed."""
    value = record.get(key)
    return value if isinstance(value, dict) else {}


def _pick(data: dict[str, Any], *keys: str) -> Any:
    """Return the first present value among ``keys``."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def _to_side(value: Any) -> Side | None:
    if isinstance(value, str) and value.upper() in Side.__members__:
        return Side[value.upper()]
    return None


def _to_trend(value: Any) -> Trend:
    if isinstance(value, str) and value.upper() in Trend.__members__:
        return Trend[value.upper()]
    return Trend.NEUTRAL


def _to_flag(value: Any) -> bool:
    """Read a JSON boolean, also accepting the strings ``"true"`` and ``"false"``."""
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == "true"


def _to_action(value: Any) -> SignalAction:
    if isinstance(value, str) and value.upper() in SignalAction.__members__:
        return SignalAction[value.upper()]
    return SignalAction.HOLD


def _to_timestamp(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(value) if isinstance(value, int | float) else parse_timestamp(str(value))
    except (ValueError, OverflowError):
        return None
    if seconds >= _MS_THRESHOLD:
        seconds //= 1000
    return seconds


def parse_tick(record: dict[str, Any]) -> TickInput:
    """Convert one recorded tick into a ``TickInput``.

    Args:
        record: Decoded JSON object for one tick.

    Returns:
        The tick, with unparseable fields set to ``None``.

    Raises:
        ValueError: If the record has no market identifier.

    """
    snapshot_data = _section(record, "snapshot")
    market_id = _pick(snapshot_data, "market_id", "marketId", "marketSlug")
    if not market_id:
        msg = "tick record has no snapshot.market_id"
        raise ValueError(msg)

    snapshot = MarketSnapshot(
        market_id=str(market_id),
        is_expired=_to_flag(_pick(snapshot_data, "is_expired", "isExpired")),
        strike_price=_to_decimal(_pick(snapshot_data, "strike_price", "strikePrice")),
        spot_price=_to_decimal(_pick(snapshot_data, "spot_price", "spotPrice")),
        time_remaining_minutes=_to_decimal(
            _pick(snapshot_data, "time_remaining_minutes", "timeRemainingMinutes")
        ),
    )
    prices_data = _section(record, "prices")
    prices = Prices(
        up=_to_decimal(_pick(prices_data, "up", "UP")),
        down=_to_decimal(_pick(prices_data, "down", "DOWN")),
    )
    signal_data = _section(record, "signal")
    signal = TradeSignal(
        action=_to_action(signal_data.get("action")),
        side=_to_side(signal_data.get("side")),
        probability=_to_decimal(_pick(signal_data, "probability", "modelProbability")),
        edge=_to_decimal(signal_data.get("edge")),
        strength=_to_decimal(signal_data.get("strength")),
    )
    return TickInput(
        snapshot=snapshot,
        prices=prices,
        signal=signal,
        trend=_to_trend(record.get("trend")),
        timestamp=_to_timestamp(record.get("timestamp")),
    )


def load_ticks(path: Path | str) -> list[TickInput]:
    """Read a JSON Lines tick file.

    Blank lines are ignored; lines that are not valid JSON objects or lack a
    market identifier are logged and skipped.

    Args:
        path: Location of the tick file.

    Returns:
        Parsed ticks in file order.

    """
    ticks: list[TickInput] = []
    with Path(path).open(encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                record = json.loads(text)
            except ValueError as exc:
                logger.warning("Skipping malformed line %d of %s: %s", line_no, path, exc)
                continue
            if not isinstance(record, dict):
                logger.warning("Skipping line %d of %s: not a JSON object", line_no, path)
                continue
            try:
                ticks.append(parse_tick(record))
            except ValueError as exc:
                logger.warning("Skipping tick on line %d of %s: %s", line_no, path, exc)
    logger.info("Loaded %d ticks from %s", len(ticks), path)
    return ticks


def summarise_events(
    events: Sequence[TradeEvent], initial_balance: Decimal, final_balance: Decimal
) -> dict[str, Decimal]:
    """Compute performance metrics over the closes in ``events``.

    Returns:
        ``total_trades``, ``wins``, ``losses``, ``win_rate``, ``net_pnl``,
        ``total_fees`` and ``total_return`` (a fraction, 0.25 = +25%).

    """
    closes = [e for e in events if e.type is EventType.CLOSE]
    wins = sum(1 for e in closes if e.is_win)
    net_pnl = sum((e.pnl for e in closes if e.pnl is not None), ZERO)
    total_return = (
        (final_balance - initial_balance) / initial_balance if initial_balance != ZERO else ZERO
    )
    return {
        "total_trades": Decimal(len(closes)),
        "wins": Decimal(wins),
        "losses": Decimal(len(closes) - wins),
        "win_rate": Decimal(wins) / Decimal(len(closes)) if closes else ZERO,
        "net_pnl": net_pnl,
        "total_fees": sum((e.fee for e in events), ZERO),
        "total_return": total_return,
    }


async def replay(
    engine: PaperTradingEngine,
    ticks: Iterable[TickInput],
    *,
    sinks: Sequence[TradeEventSink] = (),
) -> ReplayResult:
    """Feed ``ticks`` to ``engine`` and summarise the run.

    Args:
        engine: Engine to drive. Its ledger carries over from any earlier run.
        ticks: Ticks in chronological order.
        sinks: Optional collaborators that receive every event.

    Returns:
        A ``ReplayResult`` with balances, events and metrics.

    """
    session = TradingSession(engine, sinks)
    initial_balance = engine.ledger.balance
    events: list[TradeEvent] = []
    count = 0
    for tick in ticks:
        events.extend(await session.process(tick))
        count += 1
    await session.drain()

    final_balance = engine.ledger.balance
    logger.info(
        "Replay finished: %d ticks, %d events, balance %.2f -> %.2f",
        count,
        len(events),
        initial_balance,
        final_balance,
    )
    return ReplayResult(
        initial_balance=initial_balance,
        final_balance=final_balance,
        events=tuple(events),
        ticks_processed=count,
        metrics=summarise_events(events, initial_balance, final_balance),
    )

"""JSON file persistence for the engine's ledger.

The document is versioned. ``default_and_migrate`` validates a loaded
document and turns it into a ``Ledger``, filling missing fields with
defaults and upgrading the unversioned single-position layout written by
earlier releases (millisecond timestamps, ``position``/``dailyLoss``/
``recentResults`` keys). ``JsonStateStore`` adds the file I/O on top and
writes atomically through a temporary file.
"""

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from updown_trader.apps.paper_engine.exceptions import StateSchemaError
from updown_trader.apps.paper_engine.ledger import MAX_RECENT_OUTCOMES, Ledger
from updown_trader.apps.paper_engine.models import Position
from updown_trader.core.models import ONE, ZERO, Outcome, Side

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_MS_THRESHOLD = 10_000_000_000


def _decimal(value: Any, field_name: str) -> Decimal:
    """Convert a JSON number or numeric string to ``Decimal``."""
    if isinstance(value, bool):
        msg = f"{field_name}: expected a number, got {value!r}"
        raise StateSchemaError(msg)
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        msg = f"{field_name}: expected a number, got {value!r}"
        raise StateSchemaError(msg) from exc
    if not result.is_finite():
        msg = f"{field_name}: expected a finite number, got {value!r}"
        raise StateSchemaError(msg)
    return result


def _optional_decimal(value: Any, field_name: str) -> Decimal | None:
    if value is None:
        return None
    return _decimal(value, field_name)


def _timestamp(value: Any, field_name: str) -> int | None:
    """Read an epoch timestamp, accepting milliseconds from legacy documents.

    A falsy legacy value (``0``) means "never" and becomes ``None``.
    """
    if value is None or value == 0:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = f"{field_name}: expected an epoch timestamp, got {value!r}"
        raise StateSchemaError(msg)
    seconds = int(value)
    if seconds >= _MS_THRESHOLD:
        seconds //= 1000
    return seconds


def _outcomes(values: Any) -> list[Outcome]:
    if values is None:
        return []
    if not isinstance(values, list):
        msg = f"recent_outcomes: expected a list, got {type(values).__name__}"
        raise StateSchemaError(msg)
    try:
        outcomes = [Outcome(v) for v in values]
    except ValueError as exc:
        msg = f"recent_outcomes: {exc}"
        raise StateSchemaError(msg) from exc
    return outcomes[-MAX_RECENT_OUTCOMES:]


def _side(value: Any) -> Side:
    try:
        return Side(value)
    except ValueError as exc:
        msg = f"position side must be UP or DOWN, got {value!r}"
        raise StateSchemaError(msg) from exc


def _position_from_dict(data: Any) -> Position:
    """Build a ``Position`` from a schema v1 position object."""
    if not isinstance(data, dict):
        msg = f"position: expected an object, got {type(data).__name__}"
        raise StateSchemaError(msg)
    try:
        market_id = str(data["market_id"])
        side = _side(data["side"])
        entry_price = _decimal(data["entry_price"], "entry_price")
        shares = _decimal(data["shares"], "shares")
        cost_basis = _decimal(data["cost_basis"], "cost_basis")
    except KeyError as exc:
        msg = f"position is missing field {exc.args[0]!r}"
        raise StateSchemaError(msg) from exc
    if not ZERO < entry_price <= ONE:
        msg = f"entry_price must be in (0, 1], got {entry_price}"
        raise StateSchemaError(msg)
    if shares <= ZERO:
        msg = f"shares must be positive, got {shares}"
        raise StateSchemaError(msg)
    if cost_basis < ZERO:
        msg = f"cost_basis must be non-negative, got {cost_basis}"
        raise StateSchemaError(msg)
    entry_fee = data.get("entry_fee")
    return Position(
        market_id=market_id,
        side=side,
        entry_price=entry_price,
        shares=shares,
        cost_basis=cost_basis,
        entry_fee=(
            _decimal(entry_fee, "entry_fee")
            if entry_fee is not None
            else cost_basis - shares * entry_price
        ),
        entry_timestamp=_timestamp(data.get("entry_timestamp"), "entry_timestamp") or 0,
        strike_price=_optional_decimal(data.get("strike_price"), "strike_price"),
        breakeven_armed=bool(data.get("breakeven_armed", False)),
        last_mark_price=_optional_decimal(data.get("last_mark_price"), "last_mark_price"),
    )


def _migrate_legacy(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrite an unversioned single-position document into schema v1 keys."""
    migrated: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "balance": document.get("balance"),
        "daily_realized_net_loss": document.get("dailyLoss"),
        "last_stop_loss_timestamp": document.get("lastStopLossTime"),
        "last_exit_timestamp": document.get("lastExitTime"),
        "recent_outcomes": document.get("recentResults"),
        "consecutive_losses": document.get("consecutiveLosses"),
        "last_daily_reset": document.get("lastDailyReset"),
        "positions": [],
    }
    legacy = document.get("position")
    if isinstance(legacy, dict):
        try:
            migrated["positions"] = [
                {
                    "market_id": legacy["marketSlug"],
                    "side": legacy["side"],
                    "entry_price": legacy["entryPrice"],
                    "shares": legacy["shares"],
                    "cost_basis": legacy["amount"],
                    "entry_timestamp": legacy.get("entryTime"),
                    "last_mark_price": legacy["entryPrice"],
                }
            ]
        except KeyError as exc:
            msg = f"legacy position is missing field {exc.args[0]!r}"
            raise StateSchemaError(msg) from exc
    logger.info("Migrated legacy paper state to schema v%d", SCHEMA_VERSION)
    return migrated


def default_and_migrate(document: Any, *, initial_balance: Decimal, now: int) -> Ledger:
    """Validate a loaded state document and return the ledger it describes.

    Missing fields take their defaults: the balance falls back to
    ``initial_balance`` and the daily reset marker to ``now``.

    Args:
        document: Parsed JSON document (schema v1 or the legacy layout).
        initial_balance: Balance used when the document has none.
        now: Unix epoch seconds used for a missing daily reset marker.

    Returns:
        The validated ``Ledger``.

    Raises:
        StateSchemaError: If the document is not an object, was written by a
            newer schema version, or holds values of the wrong type.

    """
    if not isinstance(document, dict):
        msg = f"State document must be a JSON object, got {type(document).__name__}"
        raise StateSchemaError(msg)

    version = document.get("schema_version")
    if version is None:
        document = _migrate_legacy(document)
    elif not isinstance(version, int) or version > SCHEMA_VERSION:
        msg = f"Unsupported state schema version {version!r} (expected <= {SCHEMA_VERSION})"
        raise StateSchemaError(msg)

    raw_positions = document.get("positions")
    if raw_positions is None:
        raw_positions = []
    if not isinstance(raw_positions, list):
        msg = f"positions: expected a list, got {type(raw_positions).__name__}"
        raise StateSchemaError(msg)

    balance = document.get("balance")
    daily = document.get("daily_realized_net_loss")
    streak = document.get("consecutive_losses")
    if streak is None:
        streak = 0
    if isinstance(streak, bool) or not isinstance(streak, int) or streak < 0:
        msg = f"consecutive_losses: expected a non-negative integer, got {streak!r}"
        raise StateSchemaError(msg)

    ledger = Ledger(
        balance=initial_balance if balance is None else _decimal(balance, "balance"),
        positions=[_position_from_dict(p) for p in raw_positions],
        daily_realized_net_loss=ZERO if daily is None else _decimal(daily, "daily_loss"),
        last_stop_loss_timestamp=_timestamp(
            document.get("last_stop_loss_timestamp"), "last_stop_loss_timestamp"
        ),
        last_entry_timestamp=_timestamp(
            document.get("last_entry_timestamp"), "last_entry_timestamp"
        ),
        last_exit_timestamp=_timestamp(document.get("last_exit_timestamp"), "last_exit_timestamp"),
        recent_outcomes=_outcomes(document.get("recent_outcomes")),
        consecutive_losses=streak,
        last_daily_reset=_timestamp(document.get("last_daily_reset"), "last_daily_reset") or now,
    )
    if ledger.balance < ZERO:
        msg = f"balance must be non-negative, got {ledger.balance}"
        raise StateSchemaError(msg)
    return ledger


def _position_to_dict(position: Position) -> dict[str, Any]:
    return {
        "market_id": position.market_id,
        "side": position.side.value,
        "entry_price": str(position.entry_price),
        "shares": str(position.shares),
        "cost_basis": str(position.cost_basis),
        "entry_fee": str(position.entry_fee),
        "entry_timestamp": position.entry_timestamp,
        "strike_price": None if position.strike_price is None else str(position.strike_price),
        "breakeven_armed": position.breakeven_armed,
        "last_mark_price": (
            None if position.last_mark_price is None else str(position.last_mark_price)
        ),
    }


def ledger_to_document(ledger: Ledger) -> dict[str, Any]:
    """Serialize ``ledger`` to a schema v1 document.

    Decimals are written as strings so that no precision is lost.
    """
    return {
        "schema_version": SCHEMA_VERSION,
        "balance": str(ledger.balance),
        "positions": [_position_to_dict(p) for p in ledger.positions],
        "daily_realized_net_loss": str(ledger.daily_realized_net_loss),
        "last_stop_loss_timestamp": ledger.last_stop_loss_timestamp,
        "last_entry_timestamp": ledger.last_entry_timestamp,
        "last_exit_timestamp": ledger.last_exit_timestamp,
        "recent_outcomes": [o.value for o in ledger.recent_outcomes],
        "consecutive_losses": ledger.consecutive_losses,
        "last_daily_reset": ledger.last_daily_reset,
    }


class JsonStateStore:
    """Persist the ledger as a JSON document on the local filesystem.

    Args:
        path: Location of the state file. Parent directories are created on
            the first save.
        initial_balance: Balance of a fresh ledger when no file exists.
        clock: Callable returning the current Unix time in seconds.

    """

    def __init__(
        self,
        path: Path | str,
        *,
        initial_balance: Decimal,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store."""
        self._path = Path(path)
        self._initial_balance = initial_balance
        self._clock = clock

    @property
    def path(self) -> Path:
        """Return the location of the state file."""
        return self._path

    def load(self) -> Ledger:
        """Read and validate the persisted ledger.

        Returns:
            The stored ledger, or a fresh one holding ``initial_balance``
            when the file does not exist yet.

        Raises:
            StateSchemaError: If the file is not valid JSON or fails
                validation.

        """
        now = int(self._clock())
        if not self._path.exists():
            logger.info(
                "No state at %s; starting with balance %s", self._path, self._initial_balance
            )
            return Ledger(balance=self._initial_balance, last_daily_reset=now)
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            msg = f"State file {self._path} is not valid JSON: {exc}"
            raise StateSchemaError(msg) from exc
        return default_and_migrate(document, initial_balance=self._initial_balance, now=now)

    def save(self, ledger: Ledger) -> bool:
        """Write ``ledger`` atomically.

        Returns:
            ``True`` on success. Filesystem errors are logged and reported as
            ``False`` so the caller can retry on the next tick.

        """
        payload = json.dumps(ledger_to_document(ledger), indent=2)
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError:
            logger.warning("Failed to save paper state to %s", self._path, exc_info=True)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return False
        return True

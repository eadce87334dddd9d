"""Tests for the JSON state store and schema migration."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from updown_trader.apps.paper_engine.exceptions import StateSchemaError
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import Position
from updown_trader.apps.paper_engine.state_store import (
    SCHEMA_VERSION,
    JsonStateStore,
    default_and_migrate,
    ledger_to_document,
)
from updown_trader.core.models import ZERO, Outcome, Side

_NOW = 1704067200
_INITIAL = Decimal(100)
_LEGACY_ENTRY_MS = 1704067100123
_LEGACY_STOP_MS = 1704060000000


def _clock() -> float:
    return float(_NOW)


def _ledger() -> Ledger:
    return Ledger(
        balance=Decimal("89.8"),
        positions=[
            Position(
                market_id="btc-updown-15m-1",
                side=Side.UP,
                entry_price=Decimal("0.5"),
                shares=Decimal(20),
                cost_basis=Decimal("10.2"),
                entry_fee=Decimal("0.2"),
                entry_timestamp=_NOW - 60,
                strike_price=Decimal(60000),
                breakeven_armed=True,
                last_mark_price=Decimal("0.66"),
            )
        ],
        daily_realized_net_loss=Decimal("1.25"),
        last_entry_timestamp=_NOW - 60,
        recent_outcomes=[Outcome.WIN, Outcome.LOSS],
        consecutive_losses=1,
        last_daily_reset=_NOW - 3600,
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonStateStore:
    """Return a store writing under a temporary directory."""
    return JsonStateStore(tmp_path / "state" / "paper.json", initial_balance=_INITIAL, clock=_clock)


class TestJsonStateStore:
    """Tests for JsonStateStore."""

    def test_missing_file_gives_fresh_ledger(self, store: JsonStateStore) -> None:
        """Loading before the first save returns the initial balance."""
        ledger = store.load()
        assert ledger.balance == _INITIAL
        assert ledger.positions == []
        assert ledger.last_daily_reset == _NOW

    def test_save_then_load_preserves_ledger(self, store: JsonStateStore) -> None:
        """Saving creates parent directories and loads back the same ledger."""
        original = _ledger()
        assert store.save(original)
        assert store.load() == original

    def test_decimals_written_as_strings(self, store: JsonStateStore) -> None:
        """Amounts survive as exact decimal strings."""
        store.save(_ledger())
        document = json.loads(store.path.read_text(encoding="utf-8"))
        assert document["schema_version"] == SCHEMA_VERSION
        assert document["balance"] == "89.8"
        assert document["positions"][0]["cost_basis"] == "10.2"

    def test_invalid_json_raises(self, store: JsonStateStore) -> None:
        """A corrupt file is reported instead of being replaced silently."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StateSchemaError, match="not valid JSON"):
            store.load()

    def test_non_finite_balance_raises(self, store: JsonStateStore) -> None:
        """A NaN balance is a schema error, not a decimal signal."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"schema_version": 1, "balance": NaN}', encoding="utf-8")
        with pytest.raises(StateSchemaError, match="finite"):
            store.load()

    def test_save_failure_returns_false(self, tmp_path: Path) -> None:
        """A filesystem error is reported as a failed save."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = JsonStateStore(blocker / "paper.json", initial_balance=_INITIAL)
        assert store.save(_ledger()) is False
        assert not list(tmp_path.glob(".paper.json.*"))


class TestDefaultAndMigrate:
    """Tests for default_and_migrate."""

    def test_missing_fields_take_defaults(self) -> None:
        """An empty v1 document becomes a fresh ledger."""
        ledger = default_and_migrate(
            {"schema_version": SCHEMA_VERSION}, initial_balance=_INITIAL, now=_NOW
        )
        assert ledger.balance == _INITIAL
        assert ledger.daily_realized_net_loss == ZERO
        assert ledger.consecutive_losses == 0
        assert ledger.last_daily_reset == _NOW

    def test_round_trip_document(self) -> None:
        """A serialized ledger is read back unchanged."""
        original = _ledger()
        document = json.loads(json.dumps(ledger_to_document(original)))
        assert default_and_migrate(document, initial_balance=_INITIAL, now=_NOW) == original

    @pytest.mark.parametrize(
        ("document", "match"),
        [
            ([], "JSON object"),
            ({"schema_version": SCHEMA_VERSION + 1}, "Unsupported state schema version"),
            ({"schema_version": "1"}, "Unsupported state schema version"),
            ({"schema_version": 1, "positions": {}}, "positions"),
            ({"schema_version": 1, "positions": ""}, "positions"),
            ({"schema_version": 1, "positions": 0}, "positions"),
            ({"schema_version": 1, "positions": False}, "positions"),
            ({"schema_version": 1, "consecutive_losses": -1}, "consecutive_losses"),
            ({"schema_version": 1, "consecutive_losses": False}, "consecutive_losses"),
            ({"schema_version": 1, "consecutive_losses": 0.0}, "consecutive_losses"),
            ({"schema_version": 1, "balance": "-5"}, "non-negative"),
            ({"schema_version": 1, "balance": "lots"}, "balance"),
            ({"schema_version": 1, "balance": "NaN"}, "balance: expected a finite"),
            ({"schema_version": 1, "balance": "Infinity"}, "balance: expected a finite"),
            ({"schema_version": 1, "daily_realized_net_loss": "-Infinity"}, "daily_loss"),
            ({"schema_version": 1, "recent_outcomes": ["DRAW"]}, "recent_outcomes"),
            ({"schema_version": 1, "positions": [{"side": "UP"}]}, "missing field"),
            (
                {
                    "schema_version": 1,
                    "positions": [
                        {
                            "market_id": "m",
                            "side": "SIDEWAYS",
                            "entry_price": "0.5",
                            "shares": "1",
                            "cost_basis": "0.5",
                        }
                    ],
                },
                "UP or DOWN",
            ),
        ],
    )
    def test_invalid_documents_raise(self, document: object, match: str) -> None:
        """Malformed documents raise StateSchemaError."""
        with pytest.raises(StateSchemaError, match=match):
            default_and_migrate(document, initial_balance=_INITIAL, now=_NOW)

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"entry_price": "0"}, "entry_price must be in"),
            ({"entry_price": "-0.2"}, "entry_price must be in"),
            ({"entry_price": "1.5"}, "entry_price must be in"),
            ({"entry_price": "NaN"}, "entry_price: expected a finite"),
            ({"shares": "0"}, "shares must be positive"),
            ({"cost_basis": "-1"}, "cost_basis must be non-negative"),
        ],
    )
    def test_out_of_range_position_raises(self, overrides: dict[str, str], match: str) -> None:
        """Position amounts that no trade could have produced are rejected."""
        position = {
            "market_id": "m",
            "side": "UP",
            "entry_price": "0.5",
            "shares": "20",
            "cost_basis": "10.2",
            **overrides,
        }
        with pytest.raises(StateSchemaError, match=match):
            default_and_migrate(
                {"schema_version": 1, "positions": [position]}, initial_balance=_INITIAL, now=_NOW
            )

    def test_certain_entry_price_is_accepted(self) -> None:
        """An entry at exactly 1 is still a valid position."""
        position = {
            "market_id": "m",
            "side": "UP",
            "entry_price": "1",
            "shares": "5",
            "cost_basis": "5",
        }
        ledger = default_and_migrate(
            {"schema_version": 1, "positions": [position]}, initial_balance=_INITIAL, now=_NOW
        )
        assert ledger.positions[0].entry_price == Decimal(1)

    def test_empty_positions_list_is_accepted(self) -> None:
        """An explicit empty list means no open positions."""
        ledger = default_and_migrate(
            {"schema_version": 1, "positions": [], "consecutive_losses": 0},
            initial_balance=_INITIAL,
            now=_NOW,
        )
        assert ledger.positions == []
        assert ledger.consecutive_losses == 0

    def test_missing_entry_fee_is_derived(self) -> None:
        """The entry fee defaults to cost basis minus notional."""
        document = {
            "schema_version": 1,
            "positions": [
                {
                    "market_id": "m",
                    "side": "DOWN",
                    "entry_price": "0.5",
                    "shares": "20",
                    "cost_basis": "10.2",
                }
            ],
        }
        ledger = default_and_migrate(document, initial_balance=_INITIAL, now=_NOW)
        assert ledger.positions[0].entry_fee == Decimal("0.2")

    def test_outcomes_keep_last_ten(self) -> None:
        """Only the most recent outcomes are retained."""
        outcomes = ["LOSS"] * 5 + ["WIN"] * 10
        ledger = default_and_migrate(
            {"schema_version": 1, "recent_outcomes": outcomes}, initial_balance=_INITIAL, now=_NOW
        )
        assert ledger.recent_outcomes == [Outcome.WIN] * 10


class TestLegacyMigration:
    """Tests for upgrading the unversioned single-position layout."""

    def test_legacy_document_is_upgraded(self) -> None:
        """Camel-case keys and millisecond timestamps are converted."""
        document = {
            "balance": 95.5,
            "dailyLoss": 4.5,
            "lastStopLossTime": _LEGACY_STOP_MS,
            "lastExitTime": 0,
            "recentResults": ["WIN", "LOSS", "LOSS"],
            "consecutiveLosses": 2,
            "position": {
                "marketSlug": "btc-updown-15m-1704067200",
                "side": "DOWN",
                "entryPrice": 0.45,
                "shares": 22.222,
                "amount": 10.2,
                "entryTime": _LEGACY_ENTRY_MS,
            },
        }
        ledger = default_and_migrate(document, initial_balance=_INITIAL, now=_NOW)
        assert ledger.balance == Decimal("95.5")
        assert ledger.daily_realized_net_loss == Decimal("4.5")
        assert ledger.last_stop_loss_timestamp == _LEGACY_STOP_MS // 1000
        assert ledger.last_exit_timestamp is None
        assert ledger.consecutive_losses == 2
        assert ledger.recent_outcomes == [Outcome.WIN, Outcome.LOSS, Outcome.LOSS]
        assert ledger.last_daily_reset == _NOW

        (position,) = ledger.positions
        assert position.market_id == "btc-updown-15m-1704067200"
        assert position.side is Side.DOWN
        assert position.entry_timestamp == _LEGACY_ENTRY_MS // 1000
        assert position.cost_basis == Decimal("10.2")
        assert position.last_mark_price == Decimal("0.45")

    def test_legacy_without_position(self) -> None:
        """A legacy document with no open position migrates to an empty list."""
        ledger = default_and_migrate(
            {"balance": 80, "position": None}, initial_balance=_INITIAL, now=_NOW
        )
        assert ledger.balance == Decimal(80)
        assert ledger.positions == []

"""Synchronous paper trading engine for up/down binary markets.

``PaperTradingEngine`` is the imperative shell around the pure ``decide``
function. Each call to ``on_tick`` evaluates the tick against a copy of the
ledger, adopts the result only if evaluation completed, persists the ledger
once, and returns the emitted trade events. Ticks are serialized with a lock
so overlapping callers never interleave on the ledger.
"""

import logging
import threading
import time
from collections.abc import Callable

from updown_trader.apps.paper_engine.decision import decide
from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import (
    EngineConfig,
    EventType,
    TickInput,
    TradeEvent,
)
from updown_trader.apps.paper_engine.protocols import StateStore

logger = logging.getLogger(__name__)


class PaperTradingEngine:
    """Process ticks against a virtual ledger and emit trade events.

    Args:
        config: Engine configuration.
        store: Optional persistence backend. The ledger is loaded from it
            when no ``ledger`` is given and saved after every tick that
            changes it.
        ledger: Explicit starting ledger (overrides ``store.load()``).
        clock: Callable returning the current Unix time in seconds, used
            for ticks that carry no timestamp.

    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        store: StateStore | None = None,
        ledger: Ledger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine and load its starting ledger."""
        self._config = config
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._ticks_processed = 0
        self._save_pending = False
        if ledger is not None:
            self._ledger = ledger.copy()
        elif store is not None:
            self._ledger = store.load()
        else:
            self._ledger = Ledger(balance=config.initial_balance)

    @property
    def config(self) -> EngineConfig:
        """Return the engine configuration."""
        return self._config

    @property
    def ledger(self) -> Ledger:
        """Return a snapshot copy of the current ledger."""
        with self._lock:
            return self._ledger.copy()

    @property
    def ticks_processed(self) -> int:
        """Return how many ticks have been evaluated."""
        return self._ticks_processed

    def on_tick(self, tick: TickInput) -> list[TradeEvent]:
        """Evaluate one tick and return the trades it produced.

        Never raises: a fault while evaluating the tick is logged and the
        tick becomes a no-op that leaves the ledger untouched. A failed save
        is logged and retried on the next tick.

        Args:
            tick: Market snapshot, quotes, signal and trend for this tick.

        Returns:
            ``OPEN`` and ``CLOSE`` events in the order they were applied.

        """
        with self._lock:
            self._ticks_processed += 1
            tick_no = self._ticks_processed
            now = tick.timestamp if tick.timestamp is not None else int(self._clock())
            try:
                decision = decide(self._ledger, tick, self._config, now)
            except Exception:
                logger.exception(
                    "[tick %d] Evaluation failed on %s; ledger unchanged",
                    tick_no,
                    tick.snapshot.market_id[:20],
                )
                return []

            changed = decision.ledger != self._ledger
            self._ledger = decision.ledger
            for event in decision.events:
                self._log_event(tick_no, event)
            if decision.blocked_reason is not None:
                logger.debug("[tick %d] Entry blocked: %s", tick_no, decision.blocked_reason)
            if changed or self._save_pending:
                self._persist(tick_no)
            return list(decision.events)

    def reset_circuit_breaker(self) -> None:
        """Clear the consecutive-loss streak and persist the ledger."""
        with self._lock:
            logger.info("Circuit breaker reset (streak was %d)", self._ledger.consecutive_losses)
            self._ledger.reset_circuit_breaker()
            self._persist(self._ticks_processed)

    def _persist(self, tick_no: int) -> None:
        """Save the ledger, remembering a failure so the next tick retries."""
        if self._store is None:
            return
        try:
            saved = self._store.save(self._ledger)
        except Exception:
            logger.exception("[tick %d] State store raised while saving", tick_no)
            saved = False
        if not saved:
            logger.warning("[tick %d] Ledger not persisted; will retry next tick", tick_no)
        self._save_pending = not saved

    @staticmethod
    def _log_event(tick_no: int, event: TradeEvent) -> None:
        """Log one applied trade."""
        if event.type is EventType.OPEN:
            logger.info(
                "[tick %d] OPEN %s %s @ %.4f amount=%.2f fee=%.2f shares=%.4f balance=%.2f",
                tick_no,
                event.side.value,
                event.market_id[:20],
                event.price,
                event.amount,
                event.fee,
                event.shares,
                event.balance_after,
            )
            return
        logger.info(
            "[tick %d] CLOSE %s %s @ %.4f (%s) pnl=%+.2f fee=%.2f balance=%.2f",
            tick_no,
            event.side.value,
            event.market_id[:20],
            event.price,
            event.reason,
            event.pnl,
            event.fee,
            event.balance_after,
        )

"""Async shell that feeds ticks to the engine and fans events out to sinks.

Deliveries are fire-and-forget: the tick returns as soon as the ledger has
been updated and every sink call runs as its own task. A sink that fails is
logged by the task's done-callback and never affects the ledger or the other
sinks.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from updown_trader.apps.paper_engine.engine import PaperTradingEngine
from updown_trader.apps.paper_engine.models import TickInput, TradeEvent
from updown_trader.apps.paper_engine.protocols import TradeEventSink

logger = logging.getLogger(__name__)


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Log the failure of a background delivery task.

    Args:
        task: The completed asyncio task.

    """
    if not task.cancelled() and task.exception() is not None:
        logger.error(
            "Delivery task %s failed: %s",
            task.get_name(),
            task.exception(),
            exc_info=task.exception(),
        )


class TradingSession:
    """Drive a ``PaperTradingEngine`` from async code.

    Args:
        engine: Engine that owns the ledger.
        sinks: Collaborators that receive every emitted trade event.

    """

    def __init__(self, engine: PaperTradingEngine, sinks: Sequence[TradeEventSink] = ()) -> None:
        """Initialize the session."""
        self._engine = engine
        self._sinks = tuple(sinks)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def engine(self) -> PaperTradingEngine:
        """Return the wrapped engine."""
        return self._engine

    async def process(self, tick: TickInput) -> list[TradeEvent]:
        """Run one tick and schedule delivery of its events.

        Args:
            tick: Tick to evaluate.

        Returns:
            Events emitted by the engine for this tick.

        """
        events = self._engine.on_tick(tick)
        for event in events:
            for sink in self._sinks:
                task = asyncio.create_task(
                    sink.publish(event),
                    name=f"{type(sink).__name__}:{event.type.value}:{event.market_id[:20]}",
                )
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                task.add_done_callback(_log_task_exception)
        return events

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

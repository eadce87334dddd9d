"""Protocols for the engine's collaborators.

Define the ``TradeEventSink`` interface implemented by notifiers and trade
logs, and the ``StateStore`` interface the engine persists its ledger
through. Both decouple the engine from concrete I/O so tests can supply
in-memory fakes.
"""

from typing import Protocol, runtime_checkable

from updown_trader.apps.paper_engine.ledger import Ledger
from updown_trader.apps.paper_engine.models import TradeEvent


@runtime_checkable
class TradeEventSink(Protocol):
    """Consumer of trade events emitted by the engine.

    Implementors must not raise for transport failures they can handle
    themselves; anything that does escape is logged by the session and
    never reaches the engine.
    """

    async def publish(self, event: TradeEvent) -> None:
        """Deliver one trade event.

        Args:
            event: The open or close that just happened.

        """
        ...


@runtime_checkable
class StateStore(Protocol):
    """Durable storage for the engine's ledger."""

    def load(self) -> Ledger:
        """Return the persisted ledger, or a fresh default one."""
        ...

    def save(self, ledger: Ledger) -> bool:
        """Persist ``ledger`` and return whether the write succeeded."""
        ...

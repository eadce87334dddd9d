"""SQLAlchemy ORM models for the trade log database.

Define the ``TradeRecord`` table that stores every open and close emitted by
the paper engine. Rows are append-only and queried by market and time for
post-run analysis.
"""

from sqlalchemy import BigInteger, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from updown_trader.apps.paper_engine.models import TradeEvent


class Base(DeclarativeBase):
    """Declarative base class for all trade log ORM models."""


class TradeRecord(Base):
    """One applied trade, as emitted by the engine.

    Attributes:
        id: Auto-incrementing primary key.
        event_type: ``"OPEN"`` or ``"CLOSE"``.
        side: Outcome traded, ``"UP"`` or ``"DOWN"``.
        market_id: Market the position belongs to (indexed).
        price: Normalized execution price.
        shares: Outcome tokens traded.
        amount: Amount before fee on opens, proceeds after fee on closes.
        fee: Fee charged on this leg.
        pnl: Realized profit or loss, ``NULL`` for opens.
        reason: Entry or close reason.
        balance_after: Ledger balance after the trade.
        timestamp: Unix epoch seconds of the trade (indexed).

    """

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String)
    side: Mapped[str] = mapped_column(String)
    market_id: Mapped[str] = mapped_column(String, index=True)
    price: Mapped[float] = mapped_column(Float)
    shares: Mapped[float] = mapped_column(Float)
    amount: Mapped[float] = mapped_column(Float)
    fee: Mapped[float] = mapped_column(Float)
    pnl: Mapped[float | None] = mapped_column(Float, nullable=True)
    reason: Mapped[str] = mapped_column(String)
    balance_after: Mapped[float] = mapped_column(Float)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True)

    __table_args__ = (Index("ix_trades_market_timestamp", "market_id", "timestamp"),)

    @classmethod
    def from_event(cls, event: TradeEvent) -> "TradeRecord":
        """Build a row from an engine ``TradeEvent``."""
        return cls(
            event_type=event.type.value,
            side=event.side.value,
            market_id=event.market_id,
            price=float(event.price),
            shares=float(event.shares),
            amount=float(event.amount),
            fee=float(event.fee),
            pnl=None if event.pnl is None else float(event.pnl),
            reason=event.reason,
            balance_after=float(event.balance_after),
            timestamp=event.timestamp,
        )

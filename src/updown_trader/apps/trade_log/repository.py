"""Async repository for persisting and querying trade records.

Wrap SQLAlchemy async engine and session management for the trade log. The
repository doubles as a trade-event sink: ``publish`` inserts one row per
event, so it can be handed to a ``TradingSession`` alongside the notifier.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from sqlalchemy import func, make_url, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from updown_trader.apps.paper_engine.models import TradeEvent
from updown_trader.apps.trade_log.models import Base, TradeRecord

logger = logging.getLogger(__name__)


class TradeRepository:
    """Async repository for trade record persistence and retrieval.

    Args:
        db_url: SQLAlchemy async connection string
            (e.g. ``sqlite+aiosqlite:///trades.db``).

    """

    def __init__(self, db_url: str) -> None:
        """Initialize the repository with an async database engine.

        Args:
            db_url: SQLAlchemy async connection string.

        """
        url = make_url(db_url)
        database = url.database
        if url.get_backend_name() == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        self._engine: AsyncEngine = create_async_engine(db_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init_db(self) -> None:
        """Create all tables if they do not already exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Trade log tables initialised")

    async def save_events(self, events: Sequence[TradeEvent]) -> None:
        """Insert one row per event in a single transaction.

        Args:
            events: Trade events to persist.

        """
        if not events:
            return
        async with self._session_factory() as session, session.begin():
            session.add_all([TradeRecord.from_event(e) for e in events])
        logger.debug("Saved %d trade records", len(events))

    async def publish(self, event: TradeEvent) -> None:
        """Persist a single trade event."""
        await self.save_events([event])

    async def get_trades(self, market_id: str | None = None) -> list[TradeRecord]:
        """Return trade records in insertion order.

        Args:
            market_id: Only return trades on this market when given.

        Returns:
            Matching ``TradeRecord`` rows ordered by timestamp, then id.

        """
        stmt = select(TradeRecord).order_by(TradeRecord.timestamp, TradeRecord.id)
        if market_id is not None:
            stmt = stmt.where(TradeRecord.market_id == market_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_trade_count(self) -> int:
        """Return the total number of trade records in the database."""
        stmt = select(func.count()).select_from(TradeRecord)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def close(self) -> None:
        """Dispose the async engine and release all connections."""
        await self._engine.dispose()
        logger.info("Trade log engine disposed")

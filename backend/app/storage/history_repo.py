"""Trade history repository."""

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from core.errors import ConflictError, NetworkError, SyncError
from core.models import HistoryItem, SignalType, TradeOutcome, TrendDirection
from app.storage.database import HistoryTable, get_database


class HistoryRepository:
    """Repository for the per-identity history log."""

    async def add(self, email: str, item: HistoryItem) -> None:
        """Append an item. One entry per analysis ID."""
        try:
            async with get_database().session() as session:
                stmt = insert(HistoryTable).values(
                    id=item.id,
                    email=email,
                    symbol=item.symbol,
                    current_price=item.current_price,
                    signal=item.signal.value,
                    confidence=item.confidence,
                    trend=item.trend.value,
                    patterns_detected=list(item.patterns_detected),
                    key_support=item.key_support,
                    key_resistance=item.key_resistance,
                    reasoning=item.reasoning,
                    timestamp=item.timestamp,
                    outcome=item.outcome.value,
                    closed_at=item.closed_at,
                )
                stmt = stmt.on_conflict_do_nothing(index_elements=["id", "email"])
                result = await session.execute(stmt)
                inserted = result.rowcount
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not save history item: {e}") from e

        if not inserted:
            raise ConflictError("Result already registered for this signal.")

    async def list(self, email: str) -> list[HistoryItem]:
        """Get all items, oldest first."""
        try:
            async with get_database().session() as session:
                stmt = (
                    select(HistoryTable)
                    .where(HistoryTable.email == email)
                    .order_by(HistoryTable.closed_at.asc())
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"Could not load history: {e}") from e

        return [self._row_to_item(row) for row in rows]

    async def get(self, email: str, item_id: str) -> HistoryItem | None:
        try:
            async with get_database().session() as session:
                stmt = select(HistoryTable).where(
                    HistoryTable.email == email, HistoryTable.id == item_id
                )
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"Could not load history item: {e}") from e

        return self._row_to_item(row) if row is not None else None

    async def delete(self, email: str, item_id: str) -> bool:
        """Delete one item. Returns True if it existed."""
        try:
            async with get_database().session() as session:
                stmt = delete(HistoryTable).where(
                    HistoryTable.email == email, HistoryTable.id == item_id
                )
                result = await session.execute(stmt)
                deleted = result.rowcount
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not delete history item: {e}") from e

        return deleted > 0

    async def clear(self, email: str) -> int:
        """Delete every item for an identity. Returns the number removed."""
        try:
            async with get_database().session() as session:
                stmt = delete(HistoryTable).where(HistoryTable.email == email)
                result = await session.execute(stmt)
                deleted = result.rowcount
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not clear history: {e}") from e

        return deleted

    def _row_to_item(self, row: HistoryTable) -> HistoryItem:
        return HistoryItem(
            id=row.id,
            symbol=row.symbol,
            current_price=row.current_price,
            signal=SignalType(row.signal),
            confidence=row.confidence,
            trend=TrendDirection(row.trend),
            patterns_detected=list(row.patterns_detected or []),
            key_support=row.key_support,
            key_resistance=row.key_resistance,
            reasoning=row.reasoning,
            timestamp=row.timestamp,
            outcome=TradeOutcome(row.outcome),
            closed_at=row.closed_at,
        )

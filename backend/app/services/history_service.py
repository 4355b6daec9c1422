"""Trade history of self-reported analysis outcomes."""

import logging
from datetime import datetime

from app.services.session import HISTORY_UPDATED, SessionState
from app.services.time_integrity import Clock, utc_now
from core import history
from core.errors import NotFoundError, ValidationError
from core.history import HistoryStats
from core.models import AnalysisResult, HistoryItem, TradeOutcome
from core.store_protocol import HistoryStore

logger = logging.getLogger(__name__)


class HistoryService:
    """Append-only history log per identity, user-deletable by id or in bulk.

    Every operation raises TamperError while the clock integrity lock is on.
    """

    def __init__(self, store: HistoryStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def _email(self, session: SessionState) -> str:
        session.ensure_not_tampered()
        if session.email is None:
            raise NotFoundError("Sign in to access your history")
        return session.email

    async def record(
        self,
        session: SessionState,
        analysis: AnalysisResult,
        outcome: TradeOutcome,
        closed_at: datetime | None = None,
    ) -> HistoryItem:
        """
        Promote an analysis to the log with its outcome.

        Raises:
            TamperError: Clock integrity lock is active
            ValidationError: The analysis is an error result
            ConflictError: An outcome was already registered for it
        """
        email = self._email(session)
        if analysis.is_error:
            raise ValidationError("Failed analyses cannot be registered.")

        item = HistoryItem.from_analysis(analysis, outcome, closed_at or self.clock())
        await self.store.add(email, item)
        logger.info(f"History: {email} registered {outcome.value} for {analysis.symbol}")

        await session.notify(
            HISTORY_UPDATED,
            "Result registered",
            f"{outcome.value} registered for {analysis.symbol}.",
        )
        return item

    async def delete(self, session: SessionState, item_id: str) -> None:
        email = self._email(session)
        if not await self.store.delete(email, item_id):
            raise NotFoundError("History item not found")
        await session.notify(HISTORY_UPDATED, "Item removed", "")

    async def clear(self, session: SessionState) -> int:
        email = self._email(session)
        removed = await self.store.clear(email)
        logger.info(f"History cleared for {email}: {removed} items")
        await session.notify(HISTORY_UPDATED, "History", "History cleared.")
        return removed

    async def list(
        self,
        session: SessionState,
        symbol: str | None = None,
        outcome: TradeOutcome | None = None,
    ) -> list[HistoryItem]:
        """Items newest first, optionally filtered."""
        items = await self.store.list(self._email(session))
        return history.filter_items(items, symbol, outcome)

    async def stats(self, session: SessionState) -> HistoryStats:
        items = await self.store.list(self._email(session))
        return history.compute_stats(items)

    async def export_csv(self, session: SessionState) -> str:
        items = await self.store.list(self._email(session))
        return history.to_csv(items)

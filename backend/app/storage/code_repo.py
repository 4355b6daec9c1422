"""Premium activation code repository."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from core.errors import NetworkError, SyncError
from core.models import PremiumCode
from app.storage.database import PremiumCodeTable, get_database


class PremiumCodeRepository:
    """Repository for activation codes.

    ``claim`` is a single conditional UPDATE guarded by ``is_used = false``;
    of two concurrent claims on the same code exactly one matches a row.
    """

    async def create(self, codes: list[str]) -> int:
        """Insert unused codes. Existing codes are left untouched.

        Returns:
            Number of codes inserted
        """
        if not codes:
            return 0
        try:
            async with get_database().session() as session:
                stmt = insert(PremiumCodeTable).values([{"code": c, "is_used": False} for c in codes])
                stmt = stmt.on_conflict_do_nothing(index_elements=["code"]).returning(PremiumCodeTable.code)
                result = await session.execute(stmt)
                inserted = len(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not create codes: {e}") from e
        return inserted

    async def get(self, code: str) -> PremiumCode | None:
        """Look up a code."""
        try:
            async with get_database().session() as session:
                stmt = select(PremiumCodeTable).where(PremiumCodeTable.code == code)
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"Could not look up code: {e}") from e

        if row is None:
            return None
        return PremiumCode(
            code=row.code,
            is_used=row.is_used,
            used_by=row.used_by,
            used_at=row.used_at,
            applied_at=row.applied_at,
        )

    async def claim(self, code: str, used_by: str, used_at: datetime) -> bool:
        """Flip is_used false -> true. Returns True if this call won."""
        try:
            async with get_database().session() as session:
                stmt = (
                    update(PremiumCodeTable)
                    .where(
                        PremiumCodeTable.code == code,
                        PremiumCodeTable.is_used.is_(False),
                    )
                    .values(is_used=True, used_by=used_by, used_at=used_at)
                    .returning(PremiumCodeTable.code)
                )
                result = await session.execute(stmt)
                claimed = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not claim code: {e}") from e

        return claimed is not None

    async def mark_applied(self, code: str, applied_at: datetime) -> None:
        """Record that premium was granted for this claim."""
        try:
            async with get_database().session() as session:
                stmt = (
                    update(PremiumCodeTable)
                    .where(
                        PremiumCodeTable.code == code,
                        PremiumCodeTable.is_used.is_(True),
                        PremiumCodeTable.applied_at.is_(None),
                    )
                    .values(applied_at=applied_at)
                )
                await session.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not finalize code: {e}") from e

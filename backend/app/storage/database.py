"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import get_settings

Base = declarative_base()


class ProfileTable(Base):
    """User subscription profile, keyed by identity."""

    __tablename__ = "profiles"

    email = Column(String(320), primary_key=True)
    plan = Column(String(10), nullable=True)  # 'FREE' | 'PREMIUM'
    premium_expiry = Column(DateTime(timezone=True), nullable=True)
    credits = Column(Integer, nullable=True)
    last_credit_reset = Column(DateTime(timezone=True), nullable=True)
    last_applied_code = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))
    updated_at = Column(DateTime(timezone=True), server_default=text("NOW()"), onupdate=text("NOW()"))


class PremiumCodeTable(Base):
    """One-time premium activation codes (created out-of-band)."""

    __tablename__ = "premium_codes"

    code = Column(String(64), primary_key=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_by = Column(String(320), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    applied_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_premium_codes_used_by", "used_by"),
    )


class HistoryTable(Base):
    """Trade history: analyses with a self-reported outcome."""

    __tablename__ = "analysis_history"

    id = Column(String(36), primary_key=True)
    email = Column(String(320), primary_key=True)
    symbol = Column(String(20), nullable=False)
    current_price = Column(Numeric(24, 8), nullable=False)
    signal = Column(String(4), nullable=False)  # BUY | SELL | HOLD
    confidence = Column(Integer, nullable=False)
    trend = Column(String(7), nullable=False)
    patterns_detected = Column(JSONB, nullable=False, default=list)
    key_support = Column(Numeric(24, 8), nullable=False)
    key_resistance = Column(Numeric(24, 8), nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False)
    outcome = Column(String(4), nullable=False)  # WIN | LOSS
    closed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_history_email_closed", "email", "closed_at"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Few concurrent writers per client: pollers, one analysis, one redemption
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,    # Validate before use
            pool_recycle=3600,     # Recycle every hour
            pool_timeout=30,       # Wait max 30s for connection
            connect_args={
                "timeout": 10,                 # Connection timeout
                "command_timeout": 30,         # Query timeout
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db

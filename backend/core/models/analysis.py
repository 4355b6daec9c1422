"""Analysis result and trade history models."""

import hashlib
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class SignalType(str, Enum):
    """Trade recommendation."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TrendDirection(str, Enum):
    """Trend label derived from the EMA crossover."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class TradeOutcome(str, Enum):
    """Self-reported result of a signal."""

    WIN = "WIN"
    LOSS = "LOSS"


def generate_analysis_id(symbol: str, sample_time: datetime | None, timestamp: datetime) -> str:
    """Generate a deterministic analysis ID.

    The key covers the symbol, the last sample time and the creation
    timestamp, so each engine run gets its own ID.
    """
    sample_str = sample_time.strftime("%Y%m%d%H%M%S%f") if sample_time else "-"
    ts_str = timestamp.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{sample_str}:{ts_str}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class AnalysisResult(BaseModel):
    """One completed analysis cycle. Immutable after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    symbol: str
    current_price: Decimal
    signal: SignalType
    confidence: int = Field(ge=0, le=100)
    trend: TrendDirection
    patterns_detected: list[str] = Field(default_factory=list)
    key_support: Decimal
    key_resistance: Decimal
    reasoning: str
    timestamp: datetime

    @property
    def is_error(self) -> bool:
        """Zero confidence marks an engine-reported error result."""
        return self.confidence == 0


class HistoryItem(AnalysisResult):
    """An analysis promoted to the history log with its reported outcome."""

    outcome: TradeOutcome
    closed_at: datetime

    @classmethod
    def from_analysis(
        cls, analysis: AnalysisResult, outcome: TradeOutcome, closed_at: datetime
    ) -> "HistoryItem":
        return cls(**analysis.model_dump(), outcome=outcome, closed_at=closed_at)

"""Domain models (pydantic)."""

from core.models.analysis import (
    AnalysisResult,
    HistoryItem,
    SignalType,
    TradeOutcome,
    TrendDirection,
    generate_analysis_id,
)
from core.models.market import DEFAULT_SERIES_LENGTH, PricePoint, PriceSeries
from core.models.profile import Plan, PremiumCode, UserProfile
from core.models.time_check import TamperReason, TimeCheckResult

__all__ = [
    "AnalysisResult",
    "HistoryItem",
    "SignalType",
    "TradeOutcome",
    "TrendDirection",
    "generate_analysis_id",
    "DEFAULT_SERIES_LENGTH",
    "PricePoint",
    "PriceSeries",
    "Plan",
    "PremiumCode",
    "UserProfile",
    "TamperReason",
    "TimeCheckResult",
]

"""Deterministic signal engine.

Pure business logic with no I/O: price window -> indicators -> trade
signal with tier-shaped confidence. The same module normalises payloads
returned by the external inference endpoint so both paths produce the same
result shape and obey the same confidence bounds.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from core.indicators import ema, rsi, volatility
from core.models import (
    AnalysisResult,
    Plan,
    PriceSeries,
    SignalType,
    TrendDirection,
    generate_analysis_id,
)

EMA_FAST_PERIOD = 7
EMA_SLOW_PERIOD = 25

OVERSOLD = 30.0
OVERBOUGHT = 70.0

# Tier confidence bounds, applied as the final step of every path
PREMIUM_CONFIDENCE = (80, 98)
FREE_CONFIDENCE = (50, 60)

PATTERN_OVERSOLD = "extreme oversold"
PATTERN_OVERBOUGHT = "extreme overbought"
PATTERN_UPTREND = "uptrend"
PATTERN_DOWNTREND = "downtrend"
PATTERN_FALLBACK = "technical analysis"
PATTERN_INFERENCE_FALLBACK = "AI analysis"

MAX_INFERENCE_PATTERNS = 3

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values for one price window."""

    price: Decimal
    rsi: float
    ema_fast: float
    ema_slow: float
    std_dev: float

    @property
    def trend(self) -> TrendDirection:
        if self.ema_fast > self.ema_slow:
            return TrendDirection.BULLISH
        if self.ema_fast < self.ema_slow:
            return TrendDirection.BEARISH
        return TrendDirection.NEUTRAL


def compute_indicators(series: PriceSeries) -> IndicatorSnapshot:
    """Compute RSI(14), EMA(7), EMA(25) and the 10-sample volatility."""
    prices = series.get_prices()
    return IndicatorSnapshot(
        price=prices[-1],
        rsi=rsi(prices),
        ema_fast=ema(prices, EMA_FAST_PERIOD),
        ema_slow=ema(prices, EMA_SLOW_PERIOD),
        std_dev=volatility(prices),
    )


def clamp_confidence(value: float, tier: Plan) -> int:
    """Clamp confidence to the tier's bounds and truncate to an integer."""
    low, high = PREMIUM_CONFIDENCE if tier == Plan.PREMIUM else FREE_CONFIDENCE
    return int(math.floor(min(high, max(low, value))))


def _round_price(value: Decimal | float) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _decide(snapshot: IndicatorSnapshot) -> tuple[SignalType, float, list[str], str]:
    """Apply the decision policy. First matching rule wins."""
    value = snapshot.rsi
    trend = snapshot.trend

    if value < OVERSOLD:
        return (
            SignalType.BUY,
            60 + (OVERSOLD - value),
            [PATTERN_OVERSOLD],
            f"RSI {value:.0f} signals deep oversold conditions; a reversal to the upside is likely.",
        )
    if value > OVERBOUGHT:
        return (
            SignalType.SELL,
            60 + (value - OVERBOUGHT),
            [PATTERN_OVERBOUGHT],
            f"RSI {value:.0f} signals deep overbought conditions; a correction is likely.",
        )
    if trend == TrendDirection.BULLISH and value > 50:
        return (
            SignalType.BUY,
            55,
            [PATTERN_UPTREND],
            "Moving averages are aligned upward with healthy RSI momentum.",
        )
    if trend == TrendDirection.BEARISH and value < 50:
        return (
            SignalType.SELL,
            55,
            [PATTERN_DOWNTREND],
            "Moving averages point down and RSI confirms selling momentum.",
        )
    return (
        SignalType.HOLD,
        50,
        [],
        "Sideways market with no clear direction. Wait for confirmation.",
    )


def analyze(
    symbol: str,
    series: PriceSeries,
    tier: Plan,
    timestamp: datetime | None = None,
) -> AnalysisResult:
    """
    Derive a trade signal from a price window.

    Args:
        symbol: Asset symbol
        series: Price window, oldest first
        tier: Subscription tier used to shape confidence
        timestamp: Creation time of the result (defaults to now, UTC)

    Returns:
        AnalysisResult. An empty window yields a zero-confidence HOLD
        (the engine's error result).
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    if len(series) == 0:
        return error_result(symbol, "No market data available for analysis.", timestamp)

    snapshot = compute_indicators(series)
    signal, base_confidence, patterns, reasoning = _decide(snapshot)
    spread = Decimal(str(snapshot.std_dev)) * 2

    return AnalysisResult(
        id=generate_analysis_id(symbol, series.last.time, timestamp),
        symbol=symbol,
        current_price=snapshot.price,
        signal=signal,
        confidence=clamp_confidence(base_confidence, tier),
        trend=snapshot.trend,
        patterns_detected=patterns or [PATTERN_FALLBACK],
        key_support=_round_price(snapshot.price - spread),
        key_resistance=_round_price(snapshot.price + spread),
        reasoning=reasoning,
        timestamp=timestamp,
    )


def error_result(symbol: str, reason: str, timestamp: datetime) -> AnalysisResult:
    """Zero-confidence HOLD used when no analysis could be produced."""
    return AnalysisResult(
        id=generate_analysis_id(symbol, None, timestamp),
        symbol=symbol,
        current_price=Decimal("0"),
        signal=SignalType.HOLD,
        confidence=0,
        trend=TrendDirection.NEUTRAL,
        patterns_detected=[],
        key_support=Decimal("0"),
        key_resistance=Decimal("0"),
        reasoning=reason,
        timestamp=timestamp,
    )


def build_inference_request(symbol: str, snapshot: IndicatorSnapshot, tier: Plan) -> dict:
    """Request body for the inference endpoint."""
    return {
        "symbol": symbol,
        "currentPrice": float(snapshot.price),
        "RSI": snapshot.rsi,
        "EMA7": snapshot.ema_fast,
        "tier": tier.value,
    }


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number == 0:
        return None
    return number


def _as_enum(value: Any, enum_cls, default):
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        return default


def from_inference(
    symbol: str,
    series: PriceSeries,
    tier: Plan,
    payload: dict,
    timestamp: datetime | None = None,
) -> AnalysisResult:
    """
    Build an AnalysisResult from an inference payload.

    Missing or malformed fields are defaulted; confidence is re-clamped to
    the tier bounds regardless of what the endpoint returned.
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    snapshot = compute_indicators(series)
    price = snapshot.price
    std_dev = Decimal(str(snapshot.std_dev))

    confidence = _as_number(payload.get("confidence"))
    patterns = payload.get("patternsDetected")
    if isinstance(patterns, list):
        patterns = [str(p) for p in patterns if p][:MAX_INFERENCE_PATTERNS]
    else:
        patterns = []
    if not patterns:
        patterns = [PATTERN_INFERENCE_FALLBACK]

    support = _as_number(payload.get("keySupport"))
    resistance = _as_number(payload.get("keyResistance"))
    reasoning = payload.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = "Analysis processed."

    return AnalysisResult(
        id=generate_analysis_id(symbol, series.last.time, timestamp),
        symbol=symbol,
        current_price=price,
        signal=_as_enum(payload.get("signal"), SignalType, SignalType.HOLD),
        confidence=clamp_confidence(float(confidence) if confidence is not None else 50, tier),
        trend=_as_enum(payload.get("trend"), TrendDirection, TrendDirection.NEUTRAL),
        patterns_detected=patterns,
        key_support=_round_price(support if support is not None else price - std_dev),
        key_resistance=_round_price(resistance if resistance is not None else price + std_dev),
        reasoning=reasoning,
        timestamp=timestamp,
    )

"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    RSI_NEUTRAL,
    RSI_PERIOD,
    VOLATILITY_WINDOW,
    ema,
    ema_series,
    rsi,
    volatility,
)

__all__ = [
    "RSI_NEUTRAL",
    "RSI_PERIOD",
    "VOLATILITY_WINDOW",
    "ema",
    "ema_series",
    "rsi",
    "volatility",
]

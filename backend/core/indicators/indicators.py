"""Technical indicators for signal generation.

All functions take prices oldest-first as ``Decimal`` (or anything
``float()`` accepts) and compute in NumPy float64.
"""

from decimal import Decimal
from typing import Sequence

import numpy as np

RSI_PERIOD = 14
RSI_NEUTRAL = 50.0
VOLATILITY_WINDOW = 10


def _to_array(values: Sequence[Decimal]) -> np.ndarray:
    return np.array([float(v) for v in values], dtype=np.float64)


def rsi(values: Sequence[Decimal], period: int = RSI_PERIOD) -> float:
    """
    Calculate the Relative Strength Index over the trailing ``period`` deltas.

    Gains and losses are simple averages over the window. Returns 50 when
    fewer than ``period + 1`` samples are available, and 100 when the
    window holds no losses.

    Args:
        values: Sequence of prices
        period: Number of trailing deltas

    Returns:
        RSI in [0, 100]
    """
    if len(values) < period + 1:
        return RSI_NEUTRAL

    arr = _to_array(values)
    deltas = np.diff(arr[-(period + 1):])

    avg_gain = float(np.sum(deltas[deltas > 0])) / period
    avg_loss = float(-np.sum(deltas[deltas < 0])) / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def ema_series(values: Sequence[Decimal], period: int) -> list[float]:
    """
    Calculate the EMA series, seeded from the first sample.

    Args:
        values: Sequence of prices
        period: EMA period (smoothing k = 2 / (period + 1))

    Returns:
        List of EMA values, same length as input
    """
    if len(values) == 0:
        return []

    arr = _to_array(values)
    k = 2.0 / (period + 1)

    result = np.empty_like(arr)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = arr[i] * k + result[i - 1] * (1 - k)

    return result.tolist()


def ema(values: Sequence[Decimal], period: int) -> float:
    """
    Calculate the latest EMA value.

    With fewer samples than ``period`` the latest price is returned, so two
    EMAs over a short window compare equal (neutral trend).
    """
    if len(values) == 0:
        return 0.0
    if len(values) < period:
        return float(values[-1])
    return ema_series(values, period)[-1]


def volatility(values: Sequence[Decimal], window: int = VOLATILITY_WINDOW) -> float:
    """
    Population standard deviation of the trailing ``window`` prices.

    Returns 0.0 for an empty input.
    """
    if len(values) == 0:
        return 0.0
    arr = _to_array(values[-window:])
    return float(np.std(arr))

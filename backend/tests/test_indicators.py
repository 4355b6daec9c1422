"""Tests for technical indicators."""

import pytest
from decimal import Decimal

import numpy as np

from core.indicators import ema, ema_series, rsi, volatility


def _prices(values):
    return [Decimal(str(v)) for v in values]


class TestRsi:
    """Tests for RSI(14)."""

    def test_insufficient_data_is_neutral(self):
        """Fewer than 15 samples default to 50."""
        assert rsi(_prices(range(100, 114))) == 50.0
        assert rsi([]) == 50.0

    def test_all_gains_is_100(self):
        """14 consecutive gains and no losses give RSI 100."""
        assert rsi(_prices(range(100, 115))) == 100.0

    def test_all_losses_is_0(self):
        assert rsi(_prices(range(115, 100, -1))) == pytest.approx(0.0)

    def test_balanced_moves_is_50(self):
        """Equal gains and losses average to RS = 1."""
        values = [100, 101] * 7 + [100]
        assert rsi(_prices(values)) == pytest.approx(50.0)

    def test_uses_trailing_window_only(self):
        """Older deltas outside the 14-delta window are ignored."""
        values = list(range(200, 150, -1)) + list(range(150, 165))
        assert rsi(_prices(values)) == 100.0

    def test_simple_average_formula(self):
        """RSI = 100 - 100 / (1 + avgGain/avgLoss)."""
        values = [100] + [101, 100] * 7
        # 7 gains of 1, 7 losses of 1 -> 50
        assert rsi(_prices(values)) == pytest.approx(50.0)

        values = [100, 102, 101] * 5
        deltas = np.diff(values)[-14:]
        gain = deltas[deltas > 0].sum() / 14
        loss = -deltas[deltas < 0].sum() / 14
        expected = 100 - 100 / (1 + gain / loss)
        assert rsi(_prices(values)) == pytest.approx(expected)


class TestEma:
    """Tests for EMA."""

    def test_seeded_from_first_sample(self):
        series = ema_series(_prices([10, 20, 30]), period=3)
        # k = 0.5
        assert series[0] == 10
        assert series[1] == pytest.approx(15.0)
        assert series[2] == pytest.approx(22.5)

    def test_latest_value(self):
        values = _prices(range(1, 31))
        assert ema(values, 7) == pytest.approx(ema_series(values, 7)[-1])

    def test_short_window_returns_last_price(self):
        assert ema(_prices([5, 6, 7]), 25) == 7.0

    def test_empty(self):
        assert ema([], 7) == 0.0
        assert ema_series([], 7) == []

    def test_constant_series(self):
        values = _prices([42] * 30)
        assert ema(values, 7) == pytest.approx(42.0)
        assert ema(values, 25) == pytest.approx(42.0)

    def test_fast_ema_leads_in_uptrend(self):
        values = _prices(range(100, 160))
        assert ema(values, 7) > ema(values, 25)


class TestVolatility:
    """Tests for the 10-sample standard deviation."""

    def test_constant_price_is_zero(self):
        assert volatility(_prices([50] * 20)) == 0.0

    def test_population_std_of_last_10(self):
        values = list(range(1, 21))
        expected = float(np.std(values[-10:]))
        assert volatility(_prices(values)) == pytest.approx(expected)

    def test_short_input(self):
        assert volatility(_prices([1, 3])) == pytest.approx(1.0)
        assert volatility([]) == 0.0

"""Synthetic market feed (random walk per asset)."""

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

import numpy as np

from app.asset_catalog import Asset
from app.services.session import SessionState
from app.services.time_integrity import Clock, utc_now
from app.services.timers import MARKET_FEED, TimerRegistry
from core.models import DEFAULT_SERIES_LENGTH, PricePoint, PriceSeries

logger = logging.getLogger(__name__)

MIN_PRICE = Decimal("0.01")
INITIAL_STEP = 0.005
TICK_STEP = 0.001


def _quantum(base_price: Decimal) -> Decimal:
    # Sub-unit quotes (FX pairs) need more than two decimals to move at all
    return Decimal("0.01") if base_price >= 10 else Decimal("0.00001")


class MarketFeed:
    """Holds the live price window of the selected asset."""

    def __init__(
        self,
        asset: Asset,
        length: int = DEFAULT_SERIES_LENGTH,
        seed: int | None = None,
        clock: Clock = utc_now,
    ):
        self.length = length
        self.clock = clock
        self._rng = np.random.default_rng(seed)
        self.asset = asset
        self.series = self._initial_series(asset)

    def _round(self, price: float) -> Decimal:
        value = Decimal(str(price)).quantize(_quantum(self.asset.base_price), rounding=ROUND_HALF_UP)
        return max(MIN_PRICE, value)

    def _initial_series(self, asset: Asset) -> PriceSeries:
        """``length`` one-minute samples ending now."""
        now = self.clock()
        base = float(asset.base_price)
        steps = (self._rng.random(self.length) - 0.5) * base * INITIAL_STEP
        prices = base + np.cumsum(steps)
        volumes = self._rng.integers(100, 1100, size=self.length)

        series = PriceSeries(symbol=asset.symbol, max_size=self.length)
        for i in range(self.length):
            series.add(
                PricePoint(
                    time=now - timedelta(minutes=self.length - i),
                    price=self._round(float(prices[i])),
                    volume=int(volumes[i]),
                )
            )
        return series

    def set_asset(self, asset: Asset) -> None:
        """Switch asset and rebuild the window."""
        self.asset = asset
        self.series = self._initial_series(asset)
        logger.info(f"Market feed switched to {asset.symbol}")

    def tick(self, now: datetime | None = None) -> PricePoint:
        """Append one sample."""
        now = now or self.clock()
        last = self.series.last
        previous = float(last.price) if last else float(self.asset.base_price)
        change = (self._rng.random() - 0.5) * float(self.asset.base_price) * TICK_STEP * self.asset.volatility
        point = PricePoint(
            time=now,
            price=self._round(previous + change),
            volume=int(self._rng.integers(50, 550)),
        )
        self.series.add(point)
        return point

    def snapshot(self) -> PriceSeries:
        """Freshest window, detached from later ticks."""
        return self.series.snapshot()

    def start(self, session: SessionState, timers: TimerRegistry, interval: float = 1.0) -> None:
        """Tick every ``interval`` seconds while the clock is trusted."""

        async def on_tick() -> None:
            if session.tampered:
                return
            self.tick()

        timers.schedule_periodic(MARKET_FEED, interval, on_tick, run_immediately=False)

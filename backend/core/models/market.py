"""Market data models: price samples and the fixed-length price window."""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SERIES_LENGTH = 60


class PricePoint(BaseModel):
    """A single sample of the market feed."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    price: Decimal
    volume: int = 0


class PriceSeries(BaseModel):
    """Sliding window of recent samples with oldest-sample eviction."""

    symbol: str
    points: list[PricePoint] = Field(default_factory=list)
    max_size: int = DEFAULT_SERIES_LENGTH

    def add(self, point: PricePoint) -> None:
        """Append a sample, evicting the oldest one once the window is full."""
        self.points.append(point)
        if len(self.points) > self.max_size:
            self.points = self.points[-self.max_size :]

    def extend(self, points: list[PricePoint]) -> None:
        for point in points:
            self.add(point)

    def get_prices(self) -> list[Decimal]:
        """Get list of prices, oldest first."""
        return [p.price for p in self.points]

    def get_volumes(self) -> list[int]:
        return [p.volume for p in self.points]

    @property
    def last(self) -> PricePoint | None:
        return self.points[-1] if self.points else None

    def snapshot(self) -> "PriceSeries":
        """Copy of the window that later appends do not affect."""
        return PriceSeries(
            symbol=self.symbol,
            points=list(self.points),
            max_size=self.max_size,
        )

    def __len__(self) -> int:
        return len(self.points)

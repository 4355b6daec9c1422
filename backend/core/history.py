"""Trade history statistics."""

import csv
import io
from dataclasses import asdict, dataclass

from core.models import HistoryItem, TradeOutcome

CSV_COLUMNS = ["time", "symbol", "signal", "confidence", "outcome", "price"]


@dataclass
class HistoryStats:
    """Aggregate performance over the whole history log."""

    total: int = 0
    wins: int = 0
    win_rate: int = 0  # Rounded percent
    streak: int = 0
    streak_outcome: TradeOutcome | None = None
    best_asset: str | None = None
    avg_confidence_wins: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["streak_outcome"] = self.streak_outcome.value if self.streak_outcome else None
        return data


def compute_stats(items: list[HistoryItem]) -> HistoryStats:
    """Compute stats from history items ordered oldest first."""
    total = len(items)
    if total == 0:
        return HistoryStats()

    wins = [item for item in items if item.outcome == TradeOutcome.WIN]

    # Current streak, counted back from the newest item
    streak_outcome = items[-1].outcome
    streak = 0
    for item in reversed(items):
        if item.outcome != streak_outcome:
            break
        streak += 1

    # Best asset by win rate; first seen wins ties
    performance: dict[str, list[int]] = {}
    for item in items:
        counts = performance.setdefault(item.symbol, [0, 0])
        counts[1] += 1
        if item.outcome == TradeOutcome.WIN:
            counts[0] += 1

    best_asset = None
    best_rate = -1.0
    for symbol, (symbol_wins, symbol_total) in performance.items():
        rate = symbol_wins / symbol_total
        if rate > best_rate:
            best_rate = rate
            best_asset = symbol

    avg_conf = round(sum(item.confidence for item in wins) / len(wins)) if wins else 0

    return HistoryStats(
        total=total,
        wins=len(wins),
        win_rate=round(len(wins) / total * 100),
        streak=streak,
        streak_outcome=streak_outcome,
        best_asset=best_asset,
        avg_confidence_wins=avg_conf,
    )


def filter_items(
    items: list[HistoryItem],
    symbol: str | None = None,
    outcome: TradeOutcome | None = None,
) -> list[HistoryItem]:
    """Filter by symbol and outcome, newest first."""
    result = [
        item
        for item in items
        if (symbol is None or item.symbol == symbol)
        and (outcome is None or item.outcome == outcome)
    ]
    result.reverse()
    return result


def to_csv(items: list[HistoryItem]) -> str:
    """Render history items as CSV."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for item in items:
        writer.writerow([
            item.closed_at.isoformat(),
            item.symbol,
            item.signal.value,
            item.confidence,
            item.outcome.value,
            str(item.current_price),
        ])
    return buffer.getvalue()

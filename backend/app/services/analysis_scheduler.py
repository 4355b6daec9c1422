"""Analysis cycle state machine.

Idle -> Running -> Completed -> Cooldown -> Idle

A cycle deducts one credit up front, advances a cosmetic progress
timeline for a randomized 50-60 s, then produces exactly one signal from
the freshest price window. A fixed cooldown follows before another cycle
may start.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

import numpy as np

from app.services.session import ANALYSIS_ERROR, SIGNAL_READY, SessionState
from app.services.signal_service import SignalService
from app.services.subscription_ledger import SubscriptionLedger
from app.services.time_integrity import utc_now
from app.services.timers import ANALYSIS, TimerRegistry
from core import signal_engine
from core.errors import ConflictError, NotFoundError
from core.models import AnalysisResult, Plan, PriceSeries

logger = logging.getLogger(__name__)

SeriesProvider = Callable[[], PriceSeries]

MAX_RUNNING_PROGRESS = 99.0

# (upper bound in percent, label)
STATUS_STEPS = [
    (15, "Collecting order book and volume data..."),
    (30, "Analyzing {symbol} market structure..."),
    (45, "Computing technical indicators (RSI, EMA)..."),
    (60, "Detecting candlestick patterns and fractals..."),
    (75, "Querying predictive models..."),
    (90, "Cross-checking global market sentiment..."),
]
FINAL_STATUS = "Validating statistical probability and generating the final signal..."
STARTING_STATUS = "Connecting to analysis servers..."


class AnalysisState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    COOLDOWN = "COOLDOWN"


def compute_progress(elapsed: float, total: float) -> float:
    """Running progress in percent. Never reaches 100 before completion."""
    if total <= 0:
        return MAX_RUNNING_PROGRESS
    return min(MAX_RUNNING_PROGRESS, max(0.0, elapsed / total * 100))


def status_for_progress(progress: float, symbol: str) -> str:
    for bound, label in STATUS_STEPS:
        if progress < bound:
            return label.format(symbol=symbol)
    return FINAL_STATUS


class AnalysisScheduler:
    """Runs at most one analysis cycle at a time for a session."""

    def __init__(
        self,
        ledger: SubscriptionLedger,
        signals: SignalService,
        series_provider: SeriesProvider,
        min_seconds: float = 50.0,
        max_seconds: float = 60.0,
        tick_seconds: float = 0.2,
        cooldown_seconds: float = 30.0,
        error_cooldown_seconds: float = 5.0,
        seed: int | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.ledger = ledger
        self.signals = signals
        self.series_provider = series_provider
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.tick_seconds = tick_seconds
        self.cooldown_seconds = cooldown_seconds
        self.error_cooldown_seconds = error_cooldown_seconds
        self.monotonic = monotonic
        self._rng = np.random.default_rng(seed)

        self._state = AnalysisState.IDLE
        self._timers: TimerRegistry | None = None
        self._cooldown_until = 0.0

        self.symbol: str | None = None
        self.total_duration = 0.0
        self.elapsed = 0.0
        self.progress = 0.0
        self.status = ""
        self.last_result: AnalysisResult | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AnalysisState:
        if self._state == AnalysisState.COOLDOWN and self.cooldown_remaining <= 0:
            self._state = AnalysisState.IDLE
        return self._state

    @property
    def cooldown_remaining(self) -> float:
        return max(0.0, self._cooldown_until - self.monotonic())

    def to_dict(self) -> dict:
        state = self.state
        return {
            "state": state.value,
            "symbol": self.symbol,
            "progress": round(self.progress, 1),
            "status": self.status,
            "cooldown_remaining": int(np.ceil(self.cooldown_remaining)),
            "result": self.last_result.model_dump(mode="json") if self.last_result else None,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, session: SessionState, timers: TimerRegistry) -> None:
        """
        Start a cycle for the session's selected symbol.

        Raises:
            TamperError: Clock integrity lock is active
            NotFoundError: No profile loaded
            ConflictError: A cycle is running or the cooldown is active
            InsufficientCreditsError: FREE profile with no credits left
            SyncError: The credit deduction could not be written
        """
        session.ensure_not_tampered()
        if session.profile is None:
            raise NotFoundError("Sign in to run an analysis")

        state = self.state
        if state in (AnalysisState.RUNNING, AnalysisState.COMPLETED):
            raise ConflictError("An analysis is already running.", reason=ConflictError.BUSY)
        if state == AnalysisState.COOLDOWN:
            raise ConflictError(
                f"Wait {int(np.ceil(self.cooldown_remaining))}s before the next analysis.",
                reason=ConflictError.BUSY,
            )

        # Claim the slot before the credit write so a concurrent start is rejected
        self._state = AnalysisState.RUNNING
        try:
            await self.ledger.deduct_credit(session)
        except BaseException:
            self._state = AnalysisState.IDLE
            raise

        # Sign-out or cancel may have landed during the credit write
        if self._state != AnalysisState.RUNNING:
            logger.info("Analysis cancelled before it started")
            raise ConflictError("The analysis was cancelled.", reason=ConflictError.CANCELLED)
        if session.profile is None:
            self._state = AnalysisState.IDLE
            raise NotFoundError("Signed out before the analysis started")

        symbol = session.selected_symbol
        tier = session.profile.plan or Plan.FREE
        self.symbol = symbol
        self.total_duration = float(self._rng.uniform(self.min_seconds, self.max_seconds))
        self.elapsed = 0.0
        self.progress = 0.0
        self.status = STARTING_STATUS
        self._timers = timers

        logger.info(
            f"Analysis started: {symbol} tier={tier.value} duration={self.total_duration:.1f}s"
        )
        timers.schedule_task(ANALYSIS, self._run(session, symbol, tier))

    async def _run(self, session: SessionState, symbol: str, tier: Plan) -> None:
        last = self.monotonic()
        while True:
            now = self.monotonic()
            # Progress is frozen while the tamper lock is active
            if not session.tampered:
                self.elapsed += now - last
            last = now

            self.progress = compute_progress(self.elapsed, self.total_duration)
            self.status = status_for_progress(self.progress, symbol)
            if self.elapsed >= self.total_duration:
                break

            remaining = self.total_duration - self.elapsed
            await asyncio.sleep(min(self.tick_seconds, remaining))

        try:
            result = await self.signals.generate(symbol, self.series_provider(), tier)
        except Exception:
            logger.exception(f"Signal generation failed for {symbol}")
            result = signal_engine.error_result(
                symbol, "Analysis failed. Please try again.", utc_now()
            )

        await self._complete(session, result)

    async def _complete(self, session: SessionState, result: AnalysisResult) -> None:
        self._state = AnalysisState.COMPLETED
        self.progress = 100.0
        self.last_result = result

        cooldown = self.error_cooldown_seconds if result.is_error else self.cooldown_seconds
        self._cooldown_until = self.monotonic() + cooldown
        self._state = AnalysisState.COOLDOWN

        if result.is_error:
            logger.warning(f"Analysis error for {result.symbol}: {result.reasoning}")
            await session.notify(ANALYSIS_ERROR, "Error", result.reasoning)
        else:
            logger.info(
                f"Analysis complete: {result.symbol} {result.signal.value} "
                f"confidence={result.confidence}"
            )
            await session.notify(
                SIGNAL_READY,
                "Signal ready",
                f"{result.signal.value} - {result.symbol}",
            )

    def cancel(self) -> bool:
        """Abandon a running cycle. The deducted credit is not refunded."""
        cancelled = self._timers.cancel(ANALYSIS) if self._timers else False
        if self._state == AnalysisState.RUNNING:
            self._state = AnalysisState.IDLE
            self.progress = 0.0
            self.status = ""
            logger.info(f"Analysis cancelled: {self.symbol}")
            return True
        return cancelled

    async def on_symbol_change(self, previous: str, current: str) -> None:
        """Drop the running cycle and the result of the previous symbol."""
        self.cancel()
        if self.last_result is not None and self.last_result.symbol != current:
            self.last_result = None

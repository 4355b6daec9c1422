"""Signal generation: external inference with deterministic fallback."""

import logging
from datetime import datetime, timezone

from app.clients.inference import InferenceClient
from core import signal_engine
from core.errors import NetworkError
from core.models import AnalysisResult, Plan, PriceSeries

logger = logging.getLogger(__name__)


class SignalService:
    """Produces one AnalysisResult per call.

    The inference endpoint is tried first when configured. Any failure
    falls back to the local engine; callers never see the inference error.
    """

    def __init__(self, inference: InferenceClient | None = None):
        self.inference = inference

    async def generate(
        self,
        symbol: str,
        series: PriceSeries,
        tier: Plan,
        timestamp: datetime | None = None,
    ) -> AnalysisResult:
        timestamp = timestamp or datetime.now(timezone.utc)

        if len(series) == 0 or self.inference is None or not self.inference.enabled:
            return signal_engine.analyze(symbol, series, tier, timestamp)

        snapshot = signal_engine.compute_indicators(series)
        payload = signal_engine.build_inference_request(symbol, snapshot, tier)
        try:
            response = await self.inference.analyze(payload)
        except NetworkError as e:
            logger.warning(f"Inference unavailable for {symbol}, using local engine: {e.message}")
            return signal_engine.analyze(symbol, series, tier, timestamp)

        return signal_engine.from_inference(symbol, series, tier, response, timestamp)

    async def close(self) -> None:
        if self.inference is not None:
            await self.inference.close()

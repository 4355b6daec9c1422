"""Device clock integrity monitor."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.clients.clock_probe import ClockProbe
from app.services.session import TAMPER_CLEARED, TAMPER_DETECTED, SessionState
from app.services.timers import CLOCK_CHECK, TimerRegistry
from app.storage.watermark_cache import WatermarkCache
from core.errors import NetworkError
from core.models import TamperReason, TimeCheckResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_TOLERANCE = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimeIntegrityMonitor:
    """Detects device clock manipulation.

    Two checks per run:
    1. Backward: the device time must not fall more than ``tolerance``
       behind the last observed device time (the watermark). A backward
       result leaves the watermark untouched.
    2. Offset: the device time must be within ``tolerance`` of the
       server's ``Date`` header. An unreachable server is not treated
       as tampering; the backward check still protects offline use.
    """

    def __init__(
        self,
        probe: ClockProbe | None,
        watermark_cache: WatermarkCache | None = None,
        tolerance: timedelta = DEFAULT_TOLERANCE,
        clock: Clock = utc_now,
    ):
        self.probe = probe
        self.watermark_cache = watermark_cache
        self.tolerance = tolerance
        self.clock = clock

        self._watermark: datetime | None = None
        self._watermark_loaded = False

    @property
    def watermark(self) -> datetime | None:
        return self._watermark

    async def _load_watermark(self) -> None:
        if self._watermark_loaded:
            return
        self._watermark_loaded = True
        if self.watermark_cache is None:
            return
        stored = await self.watermark_cache.load()
        if stored is not None and (self._watermark is None or stored > self._watermark):
            self._watermark = stored

    async def _advance_watermark(self, device_time: datetime) -> None:
        self._watermark = device_time
        if self.watermark_cache is not None:
            await self.watermark_cache.save(device_time)

    async def check(self) -> TimeCheckResult:
        """Run both checks. Only the watermark is updated as a side effect."""
        device_time = self.clock()
        await self._load_watermark()

        if self._watermark is not None and device_time < self._watermark - self.tolerance:
            return TimeCheckResult(
                tampered=True,
                reason=TamperReason.BACKWARD,
                device_time=device_time,
            )

        await self._advance_watermark(device_time)

        if self.probe is None:
            return TimeCheckResult(device_time=device_time)

        try:
            server_time = await self.probe.server_time()
        except NetworkError as e:
            logger.warning(f"Clock probe unavailable, relying on local check: {e}")
            return TimeCheckResult(device_time=device_time)

        if server_time is None:
            return TimeCheckResult(device_time=device_time)

        if abs(device_time - server_time) > self.tolerance:
            return TimeCheckResult(
                tampered=True,
                reason=TamperReason.OFFSET,
                device_time=device_time,
                server_time=server_time,
            )

        return TimeCheckResult(device_time=device_time, server_time=server_time)

    async def refresh(self, session: SessionState) -> TimeCheckResult:
        """Check and apply the result to the session, notifying on transitions."""
        result = await self.check()
        changed = session.apply_time_check(result)

        if changed and result.tampered:
            logger.warning(
                f"Clock tampering detected ({result.reason.value}): "
                f"device={result.device_time} server={result.server_time}"
            )
            await session.notify(
                TAMPER_DETECTED,
                "Security lock",
                "Device date/time manipulation detected. Enable automatic "
                "time to continue.",
            )
        elif changed:
            logger.info("Clock integrity restored")
            await session.notify(
                TAMPER_CLEARED,
                "Clock verified",
                "Device time is consistent again. Features are unlocked.",
            )
        return result

    async def on_foreground(self, session: SessionState) -> TimeCheckResult:
        """Re-check when the client regains visibility."""
        return await self.refresh(session)

    def start(self, session: SessionState, timers: TimerRegistry, interval: float = 30.0) -> None:
        """Check now and then every ``interval`` seconds."""

        async def tick() -> None:
            await self.refresh(session)

        timers.schedule_periodic(CLOCK_CHECK, interval, tick)

    async def close(self) -> None:
        if self.probe is not None:
            await self.probe.close()

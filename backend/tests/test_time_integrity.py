"""Tests for the clock integrity monitor."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from app.services.session import TAMPER_CLEARED, TAMPER_DETECTED, SessionState
from app.services.time_integrity import TimeIntegrityMonitor
from app.services.timers import CLOCK_CHECK, TimerRegistry
from core.errors import NetworkError, TamperError
from core.models import TamperReason

from fakes import T0, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def probe(clock):
    """Probe whose server time tracks the fake clock."""
    probe = MagicMock()
    probe.server_time = AsyncMock(side_effect=lambda: clock.now)
    probe.close = AsyncMock()
    return probe


@pytest.fixture
def watermarks():
    cache = MagicMock()
    cache.load = AsyncMock(return_value=None)
    cache.save = AsyncMock(return_value=True)
    return cache


@pytest.fixture
def monitor(probe, watermarks, clock):
    return TimeIntegrityMonitor(probe, watermarks, clock=clock)


class TestBackwardCheck:
    @pytest.mark.asyncio
    async def test_clock_moved_back_ten_minutes(self, monitor, clock, probe):
        """Watermark T, next check at T - 10 min -> backward."""
        first = await monitor.check()
        assert not first.tampered
        assert monitor.watermark == T0

        clock.set(T0 - timedelta(minutes=10))
        probe.server_time.side_effect = None
        probe.server_time.return_value = T0
        result = await monitor.check()

        assert result.tampered
        assert result.reason == TamperReason.BACKWARD
        assert result.device_time == T0 - timedelta(minutes=10)
        # Watermark does not move on a backward result
        assert monitor.watermark == T0

    @pytest.mark.asyncio
    async def test_backward_within_tolerance(self, monitor, clock):
        await monitor.check()
        clock.set(T0 - timedelta(minutes=4))
        result = await monitor.check()
        assert not result.tampered
        assert monitor.watermark == T0 - timedelta(minutes=4)

    @pytest.mark.asyncio
    async def test_backward_detected_offline(self, monitor, clock, probe):
        await monitor.check()
        probe.server_time.side_effect = NetworkError("offline")
        clock.set(T0 - timedelta(hours=5))

        result = await monitor.check()

        assert result.tampered
        assert result.reason == TamperReason.BACKWARD

    @pytest.mark.asyncio
    async def test_persisted_watermark_survives_restart(self, probe, watermarks, clock):
        watermarks.load.return_value = T0 + timedelta(hours=1)
        monitor = TimeIntegrityMonitor(probe, watermarks, clock=clock)

        result = await monitor.check()

        assert result.tampered
        assert result.reason == TamperReason.BACKWARD
        watermarks.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_watermark_saved_on_advance(self, monitor, watermarks, clock):
        clock.advance(seconds=30)
        await monitor.check()
        watermarks.save.assert_awaited_once_with(clock.now)


class TestOffsetCheck:
    @pytest.mark.asyncio
    async def test_device_ahead_of_server(self, monitor, probe, clock):
        probe.server_time.side_effect = None
        probe.server_time.return_value = T0 - timedelta(minutes=6)

        result = await monitor.check()

        assert result.tampered
        assert result.reason == TamperReason.OFFSET
        assert result.server_time == T0 - timedelta(minutes=6)

    @pytest.mark.asyncio
    async def test_small_offset_allowed(self, monitor, probe):
        probe.server_time.side_effect = None
        probe.server_time.return_value = T0 + timedelta(minutes=5)
        result = await monitor.check()
        assert not result.tampered

    @pytest.mark.asyncio
    async def test_probe_failure_fails_open(self, monitor, probe):
        probe.server_time.side_effect = NetworkError("offline")
        result = await monitor.check()
        assert not result.tampered

    @pytest.mark.asyncio
    async def test_missing_date_header(self, monitor, probe):
        probe.server_time.side_effect = None
        probe.server_time.return_value = None
        result = await monitor.check()
        assert not result.tampered
        assert result.server_time is None

    @pytest.mark.asyncio
    async def test_no_probe_configured(self, watermarks, clock):
        monitor = TimeIntegrityMonitor(None, watermarks, clock=clock)
        result = await monitor.check()
        assert not result.tampered


class TestRefresh:
    """Applying results to the session."""

    @pytest.fixture
    def session(self):
        return SessionState()

    @pytest.fixture
    def kinds(self, session):
        kinds = []

        async def listener(n):
            kinds.append(n.kind)

        session.on_notification(listener)
        return kinds

    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, monitor, session, kinds, probe, clock):
        await monitor.refresh(session)
        assert session.integrity_checked.is_set()
        assert not session.tampered

        probe.server_time.side_effect = None
        probe.server_time.return_value = T0
        clock.set(T0 - timedelta(minutes=30))
        await monitor.refresh(session)
        assert session.tampered
        with pytest.raises(TamperError):
            session.ensure_not_tampered()

        # Still tampered: no duplicate notification
        await monitor.refresh(session)

        clock.set(T0 + timedelta(seconds=10))
        probe.server_time.return_value = clock.now
        await monitor.on_foreground(session)
        assert not session.tampered

        assert kinds == [TAMPER_DETECTED, TAMPER_CLEARED]

    @pytest.mark.asyncio
    async def test_start_runs_immediately(self, monitor, session):
        timers = TimerRegistry()
        monitor.start(session, timers, interval=30)
        try:
            assert timers.is_active(CLOCK_CHECK)
            assert await session.wait_for_integrity(timeout=1.0)
        finally:
            timers.cancel_all()
            await asyncio.sleep(0)

"""Tests for session state."""

import pytest
from datetime import timedelta

from app.services.session import SessionState
from core.errors import TamperError, ValidationError
from core.models import Plan, TamperReason, TimeCheckResult, UserProfile

from fakes import T0


@pytest.fixture
def session():
    return SessionState("BTC/USD", ["BTC/USD", "ETH/USD"])


@pytest.fixture
def premium():
    return UserProfile(
        email="vip@example.com",
        plan=Plan.PREMIUM,
        premium_expiry=T0 + timedelta(days=30),
        credits=15,
        last_credit_reset=T0,
    )


class TestSessionState:
    def test_defaults(self, session):
        assert not session.is_authenticated
        assert session.email is None
        assert session.selected_symbol == "BTC/USD"
        assert not session.integrity_checked.is_set()

    def test_apply_time_check_reports_transitions(self, session):
        assert not session.apply_time_check(TimeCheckResult())
        assert session.integrity_checked.is_set()

        tampered = TimeCheckResult(tampered=True, reason=TamperReason.OFFSET)
        assert session.apply_time_check(tampered)
        assert not session.apply_time_check(tampered)
        with pytest.raises(TamperError):
            session.ensure_not_tampered()

        assert session.apply_time_check(TimeCheckResult())
        session.ensure_not_tampered()

    @pytest.mark.asyncio
    async def test_wait_for_integrity_times_out(self, session):
        assert not await session.wait_for_integrity(timeout=0.01)

    @pytest.mark.asyncio
    async def test_premium_symbol_needs_premium(self, session, premium):
        with pytest.raises(ValidationError):
            await session.select_symbol("XAU/USD")

        await session.select_symbol("ETH/USD")
        assert session.selected_symbol == "ETH/USD"

        session.profile = premium
        await session.select_symbol("XAU/USD")
        assert session.selected_symbol == "XAU/USD"

    @pytest.mark.asyncio
    async def test_symbol_listeners(self, session, premium):
        changes = []

        async def listener(previous, current):
            changes.append((previous, current))

        session.on_symbol_change(listener)
        session.on_symbol_change(listener)
        session.profile = premium

        await session.select_symbol("XAU/USD")
        await session.select_symbol("XAU/USD")
        assert await session.revert_to_free_symbol()
        assert not await session.revert_to_free_symbol()

        assert changes == [("BTC/USD", "XAU/USD"), ("XAU/USD", "BTC/USD")]

    @pytest.mark.asyncio
    async def test_sign_out_resets_symbol(self, session, premium):
        session.profile = premium
        await session.select_symbol("XAU/USD")

        await session.sign_out()

        assert session.profile is None
        assert session.selected_symbol == "BTC/USD"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, session):
        received = []

        async def broken(notification):
            raise RuntimeError("socket gone")

        async def working(notification):
            received.append(notification)

        session.on_notification(broken)
        session.on_notification(working)
        notification = await session.notify("sync_error", "Sync", "offline")

        assert received == [notification]
        assert notification.to_dict()["kind"] == "sync_error"

        session.off_notification(working)
        await session.notify("sync_error", "Sync", "offline")
        assert len(received) == 1

"""Tests for the pure subscription rules."""

import pytest
from datetime import timedelta

from core import subscription
from core.errors import InsufficientCreditsError
from core.models import Plan, UserProfile

from fakes import T0


def free_profile(**kwargs) -> UserProfile:
    data = {"email": "a@b.c", "plan": Plan.FREE, "credits": 15, "last_credit_reset": T0}
    data.update(kwargs)
    return UserProfile(**data)


def premium_profile(expiry, **kwargs) -> UserProfile:
    return free_profile(plan=Plan.PREMIUM, premium_expiry=expiry, **kwargs)


class TestNewProfile:
    def test_defaults(self):
        profile = subscription.new_profile("a@b.c", T0)
        assert profile.plan == Plan.FREE
        assert profile.credits == 15
        assert profile.premium_expiry is None
        assert profile.last_credit_reset == T0
        assert profile.version == 0


class TestReconcileOnLoad:
    def test_nothing_to_do(self):
        assert subscription.reconcile_on_load(free_profile(), T0) is None

    def test_fills_missing_defaults(self):
        profile = UserProfile(email="a@b.c", plan=None, credits=None, last_credit_reset=None)
        updated = subscription.reconcile_on_load(profile, T0)
        assert updated.plan == Plan.FREE
        assert updated.credits == 15
        assert updated.last_credit_reset == T0

    def test_downgrades_expired_premium(self):
        profile = premium_profile(T0 - timedelta(seconds=1))
        updated = subscription.reconcile_on_load(profile, T0)
        assert updated.plan == Plan.FREE
        assert updated.premium_expiry is None

    def test_keeps_active_premium(self):
        profile = premium_profile(T0 + timedelta(days=1))
        assert subscription.reconcile_on_load(profile, T0) is None

    def test_premium_without_expiry_is_downgraded(self):
        updated = subscription.reconcile_on_load(premium_profile(None), T0)
        assert updated.plan == Plan.FREE


class TestCreditReset:
    """Reset fires at exactly 4 hours, never before."""

    @pytest.mark.parametrize("elapsed", [timedelta(hours=4), timedelta(hours=4, seconds=1), timedelta(days=3)])
    def test_resets_after_interval(self, elapsed):
        profile = free_profile(credits=2)
        now = T0 + elapsed
        updated = subscription.maybe_reset_credits(profile, now)
        assert updated.credits == 15
        assert updated.last_credit_reset == now

    @pytest.mark.parametrize("elapsed", [timedelta(0), timedelta(hours=3, minutes=59, seconds=59)])
    def test_no_change_before_interval(self, elapsed):
        assert subscription.maybe_reset_credits(free_profile(credits=2), T0 + elapsed) is None

    def test_missing_last_reset_resets(self):
        updated = subscription.maybe_reset_credits(free_profile(last_credit_reset=None, credits=0), T0)
        assert updated.credits == 15


class TestPremiumExpiry:
    def test_expires_strictly_after(self):
        expiry = T0 + timedelta(days=1)
        profile = premium_profile(expiry)
        assert subscription.maybe_expire_premium(profile, expiry) is None
        updated = subscription.maybe_expire_premium(profile, expiry + timedelta(seconds=1))
        assert updated.plan == Plan.FREE
        assert updated.premium_expiry is None

    def test_free_unchanged(self):
        assert subscription.maybe_expire_premium(free_profile(), T0) is None

    def test_remaining(self):
        profile = premium_profile(T0 + timedelta(hours=2))
        assert subscription.premium_remaining(profile, T0) == timedelta(hours=2)
        assert subscription.premium_remaining(profile, T0 + timedelta(hours=3)) == timedelta(0)
        assert subscription.premium_remaining(free_profile(), T0) == timedelta(0)


class TestDeductCredit:
    def test_decrements(self):
        assert subscription.deduct_credit(free_profile(credits=3)).credits == 2

    def test_last_credit(self):
        assert subscription.deduct_credit(free_profile(credits=1)).credits == 0

    def test_exhausted(self):
        with pytest.raises(InsufficientCreditsError):
            subscription.deduct_credit(free_profile(credits=0))

    def test_premium_unmetered(self):
        profile = premium_profile(T0 + timedelta(days=1), credits=0)
        assert subscription.deduct_credit(profile) is None


class TestExtendPremium:
    def test_from_free(self):
        updated = subscription.extend_premium(free_profile(), T0)
        assert updated.plan == Plan.PREMIUM
        assert updated.premium_expiry == T0 + timedelta(days=30)

    def test_stacks_on_active_period(self):
        profile = premium_profile(T0 + timedelta(days=10))
        updated = subscription.extend_premium(profile, T0)
        assert updated.premium_expiry == T0 + timedelta(days=40)

    def test_lapsed_period_starts_from_now(self):
        profile = premium_profile(T0 - timedelta(days=5))
        updated = subscription.extend_premium(profile, T0, days=7)
        assert updated.premium_expiry == T0 + timedelta(days=7)

    def test_records_code(self):
        assert subscription.extend_premium(free_profile(), T0).last_applied_code is None
        updated = subscription.extend_premium(free_profile(), T0, code="VERTX-TRAD-AB12-CD34-30")
        assert updated.last_applied_code == "VERTX-TRAD-AB12-CD34-30"

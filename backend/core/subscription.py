"""Subscription ledger rules.

Pure functions over ``(profile, now)``. Each returns the updated profile,
or ``None`` when the rule does not apply, so the caller can skip the
remote write entirely. Persistence, locking and version checks live in
``app.services.subscription_ledger``.
"""

from datetime import datetime, timedelta

from core.errors import InsufficientCreditsError
from core.models import Plan, UserProfile

INITIAL_CREDITS = 15
CREDIT_RESET_INTERVAL = timedelta(hours=4)
PREMIUM_GRANT_DAYS = 30


def new_profile(email: str, now: datetime, credits: int = INITIAL_CREDITS) -> UserProfile:
    """Profile created at registration."""
    return UserProfile(
        email=email,
        plan=Plan.FREE,
        premium_expiry=None,
        credits=credits,
        last_credit_reset=now,
    )


def is_premium_expired(profile: UserProfile, now: datetime) -> bool:
    """A premium profile without an expiry violates the model and counts as expired."""
    if profile.plan != Plan.PREMIUM:
        return False
    if profile.premium_expiry is None:
        return True
    return now > profile.premium_expiry


def reconcile_on_load(
    profile: UserProfile, now: datetime, credits: int = INITIAL_CREDITS
) -> UserProfile | None:
    """Fill missing defaults and downgrade an expired premium plan."""
    updates: dict = {}

    if profile.plan is None:
        updates["plan"] = Plan.FREE
    if profile.credits is None:
        updates["credits"] = credits
    if profile.last_credit_reset is None:
        updates["last_credit_reset"] = now

    if is_premium_expired(profile, now):
        updates["plan"] = Plan.FREE
        updates["premium_expiry"] = None

    if not updates:
        return None
    return profile.model_copy(update=updates)


def maybe_reset_credits(
    profile: UserProfile,
    now: datetime,
    credits: int = INITIAL_CREDITS,
    interval: timedelta = CREDIT_RESET_INTERVAL,
) -> UserProfile | None:
    """Restore the free quota once ``interval`` has passed since the last reset."""
    last_reset = profile.last_credit_reset
    if last_reset is not None and now - last_reset < interval:
        return None
    return profile.model_copy(update={"credits": credits, "last_credit_reset": now})


def maybe_expire_premium(profile: UserProfile, now: datetime) -> UserProfile | None:
    """Downgrade to FREE once the premium period has lapsed."""
    if not is_premium_expired(profile, now):
        return None
    return profile.model_copy(update={"plan": Plan.FREE, "premium_expiry": None})


def deduct_credit(profile: UserProfile) -> UserProfile | None:
    """Consume one free-tier credit. Premium profiles are not metered.

    Raises:
        InsufficientCreditsError: FREE profile with no credits left
    """
    if profile.plan == Plan.PREMIUM:
        return None

    remaining = profile.credits or 0
    if remaining <= 0:
        raise InsufficientCreditsError(
            "No credits left. Credits are restored every 4 hours, "
            "or activate Premium for unlimited signals."
        )
    return profile.model_copy(update={"credits": remaining - 1})


def extend_premium(
    profile: UserProfile,
    now: datetime,
    days: int = PREMIUM_GRANT_DAYS,
    code: str | None = None,
) -> UserProfile:
    """Grant ``days`` of premium, stacking on top of an unexpired period.

    ``code`` is recorded as ``last_applied_code`` when given.
    """
    current = profile.premium_expiry
    base = current if current is not None and current > now else now
    update = {"plan": Plan.PREMIUM, "premium_expiry": base + timedelta(days=days)}
    if code is not None:
        update["last_applied_code"] = code
    return profile.model_copy(update=update)


def premium_remaining(profile: UserProfile, now: datetime) -> timedelta:
    """Time left on the premium plan (zero when FREE or expired)."""
    if profile.plan != Plan.PREMIUM or profile.premium_expiry is None:
        return timedelta(0)
    return max(timedelta(0), profile.premium_expiry - now)

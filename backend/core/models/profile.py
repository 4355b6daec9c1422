"""Subscription models: user profile and premium activation codes."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict


class Plan(str, Enum):
    """Subscription level."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"


class UserProfile(BaseModel):
    """Plan, credits and premium expiry for one identity.

    ``plan``, ``credits`` and ``last_credit_reset`` may be missing on
    records created before defaults existed; the ledger fills them in on
    load. ``last_applied_code`` is written in the same update that grants
    premium for a code. ``version`` is bumped by the store on every successful write and
    guards compare-and-swap updates.
    """

    model_config = ConfigDict(frozen=True)

    email: str
    plan: Plan | None = Plan.FREE
    premium_expiry: datetime | None = None
    credits: int | None = None
    last_credit_reset: datetime | None = None
    last_applied_code: str | None = None
    version: int = 0

    @property
    def is_premium(self) -> bool:
        return self.plan == Plan.PREMIUM

    @property
    def has_defaults(self) -> bool:
        return (
            self.plan is not None
            and self.credits is not None
            and self.last_credit_reset is not None
        )

    def mutable_fields(self) -> dict:
        """Fields a ledger write is allowed to change."""
        return {
            "plan": self.plan,
            "premium_expiry": self.premium_expiry,
            "credits": self.credits,
            "last_credit_reset": self.last_credit_reset,
            "last_applied_code": self.last_applied_code,
        }


class PremiumCode(BaseModel):
    """One-time premium activation code.

    ``is_used`` moves from False to True exactly once. ``applied_at`` is
    set once the premium extension for the claim has been written.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    is_used: bool = False
    used_by: str | None = None
    used_at: datetime | None = None
    applied_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        """Claimed but the premium extension never landed."""
        return self.is_used and self.applied_at is None

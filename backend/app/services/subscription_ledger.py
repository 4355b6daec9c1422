"""Subscription ledger service.

Owns every write to a user's plan, credits and premium expiry. The rules
themselves are pure functions in ``core.subscription``; this service
serializes them per identity and commits them to the profile store with
a version check.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from app.services.session import (
    ACCOUNT_ERROR,
    CREDITS_RESTORED,
    PREMIUM_EXPIRED,
    SYNC_ERROR,
    SessionState,
)
from app.services.time_integrity import Clock, utc_now
from app.services.timers import CREDIT_RESET, EXPIRY_CHECK, TimerRegistry
from core import subscription
from core.errors import ConflictError, NetworkError, NotFoundError, SignalDeskError, SyncError
from core.models import UserProfile
from core.store_protocol import ProfileStore

logger = logging.getLogger(__name__)

Rule = Callable[[UserProfile], UserProfile | None]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a committed (or skipped) ledger mutation."""

    profile: UserProfile  # Profile now held by the session
    previous: UserProfile  # Snapshot before the mutation
    changed: bool  # False when the rule did not apply


class SubscriptionLedger:
    """Serialized, version-checked profile mutations."""

    def __init__(
        self,
        store: ProfileStore,
        initial_credits: int = subscription.INITIAL_CREDITS,
        credit_reset_interval: timedelta = subscription.CREDIT_RESET_INTERVAL,
        premium_days: int = subscription.PREMIUM_GRANT_DAYS,
        max_retries: int = 3,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.initial_credits = initial_credits
        self.credit_reset_interval = credit_reset_interval
        self.premium_days = premium_days
        self.max_retries = max_retries
        self.clock = clock

        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, email: str) -> asyncio.Lock:
        lock = self._locks.get(email)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[email] = lock
        return lock

    # -------------------------------------------------------------------------
    # Account lifecycle
    # -------------------------------------------------------------------------

    async def register(self, email: str, now: datetime | None = None) -> UserProfile:
        """Create the profile for a new identity.

        An identity that already exists keeps its stored profile.
        """
        now = now or self.clock()
        profile = subscription.new_profile(email, now, self.initial_credits)
        stored = await self.store.create(profile)
        logger.info(f"Registered profile for {email}")
        return stored

    async def load(
        self, session: SessionState, email: str, now: datetime | None = None
    ) -> UserProfile:
        """Fetch the profile into the session and reconcile it with the clock.

        Raises:
            NotFoundError: Unknown identity
            NetworkError: Profile store unreachable
            SyncError: Reconciliation could not be written back
        """
        profile = await self.store.get(email)
        if profile is None:
            raise NotFoundError(f"No profile found for {email}")

        session.profile = profile
        now = now or self.clock()
        result = await self._mutate(
            session,
            lambda p: subscription.reconcile_on_load(p, now, self.initial_credits),
        )
        if result.changed:
            logger.info(
                f"Reconciled profile {email}: plan={result.profile.plan.value} "
                f"credits={result.profile.credits}"
            )
        return result.profile

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _mutate(self, session: SessionState, rule: Rule) -> MutationResult:
        """Apply ``rule`` to the session profile and commit it.

        The session profile is replaced only after the store accepted the
        write. A version mismatch re-reads the profile and retries.

        Raises:
            ConflictError: Version mismatch persisted after all retries
            SyncError: Store write failed; ``previous`` is the snapshot
        """
        if session.profile is None:
            raise NotFoundError("No profile loaded for this session")

        email = session.profile.email
        async with self._lock_for(email):
            snapshot = session.profile
            if snapshot is None:
                raise NotFoundError("No profile loaded for this session")
            current = snapshot

            for attempt in range(self.max_retries + 1):
                updated = rule(current)
                if updated is None:
                    if session.profile is not None and session.profile.email == email:
                        session.profile = current
                    return MutationResult(profile=current, previous=snapshot, changed=False)

                try:
                    stored = await self.store.compare_and_swap(updated, current.version)
                except SyncError as e:
                    logger.error(f"Profile write failed for {email}: {e.message}")
                    raise SyncError(e.message, previous=snapshot) from e

                if stored is not None:
                    # A sign-out during the write keeps the session empty
                    if session.profile is not None and session.profile.email == email:
                        session.profile = stored
                    return MutationResult(profile=stored, previous=snapshot, changed=True)

                logger.warning(
                    f"Profile version conflict for {email} "
                    f"(expected v{current.version}, attempt {attempt + 1})"
                )
                if attempt == self.max_retries:
                    break

                try:
                    fresh = await self.store.get(email)
                except NetworkError as e:
                    raise SyncError(
                        f"Could not re-read profile after conflict: {e.message}",
                        previous=snapshot,
                    ) from e
                if fresh is None:
                    raise NotFoundError(f"Profile {email} disappeared")
                current = fresh

        raise ConflictError(
            "Your account was updated elsewhere. Please try again.",
            reason=ConflictError.VERSION_CONFLICT,
        )

    async def maybe_reset_credits(
        self, session: SessionState, now: datetime | None = None
    ) -> MutationResult:
        """Restore the free quota once the reset interval has elapsed."""
        now = now or self.clock()
        result = await self._mutate(
            session,
            lambda p: subscription.maybe_reset_credits(
                p, now, self.initial_credits, self.credit_reset_interval
            ),
        )
        if result.changed:
            logger.info(f"Credits reset for {result.profile.email}")
            await session.notify(
                CREDITS_RESTORED,
                "Credits restored",
                f"Your {self.initial_credits} free analyses are available again.",
            )
        return result

    async def maybe_expire_premium(
        self, session: SessionState, now: datetime | None = None
    ) -> MutationResult:
        """Downgrade a lapsed premium plan and release premium-only assets."""
        now = now or self.clock()
        result = await self._mutate(
            session, lambda p: subscription.maybe_expire_premium(p, now)
        )
        if result.changed:
            logger.info(f"Premium expired for {result.profile.email}")
            await session.revert_to_free_symbol()
            await session.notify(
                PREMIUM_EXPIRED,
                "Premium expired",
                "Your premium access has ended. Redeem a new code to continue.",
            )
        return result

    async def deduct_credit(self, session: SessionState) -> MutationResult:
        """Consume one credit (no-op for premium).

        Raises:
            InsufficientCreditsError: FREE profile with no credits left
        """
        return await self._mutate(session, subscription.deduct_credit)

    async def extend_premium(
        self,
        session: SessionState,
        now: datetime | None = None,
        days: int | None = None,
        code: str | None = None,
    ) -> MutationResult:
        """Grant premium, stacking on any unexpired period.

        With ``code``, the grant is skipped (``changed=False``) when the
        stored profile already records that code as applied.
        """
        now = now or self.clock()
        days = self.premium_days if days is None else days

        def rule(profile: UserProfile) -> UserProfile | None:
            if code is not None and profile.last_applied_code == code:
                return None
            return subscription.extend_premium(profile, now, days, code)

        return await self._mutate(session, rule)

    # -------------------------------------------------------------------------
    # Pollers
    # -------------------------------------------------------------------------

    async def _poll(
        self,
        session: SessionState,
        action: Callable[[SessionState], Awaitable[MutationResult]],
    ) -> None:
        # Skip until the first clock check has run, and while tampered
        if not session.is_authenticated:
            return
        if not session.integrity_checked.is_set() or session.tampered:
            return

        try:
            await action(session)
        except SyncError as e:
            logger.error(f"Ledger sync failed: {e.message}")
            await session.notify(
                SYNC_ERROR,
                "Sync error",
                "Your account could not be updated. State may be out of sync.",
            )
        except SignalDeskError as e:
            logger.warning(f"Ledger poll skipped: {e.message}")
            await session.notify(ACCOUNT_ERROR, "Account update failed", e.message)

    def start(
        self,
        session: SessionState,
        timers: TimerRegistry,
        reset_interval: float = 60.0,
        expiry_interval: float = 1.0,
    ) -> None:
        """Start the credit-reset and premium-expiry pollers."""

        async def reset_tick() -> None:
            await self._poll(session, self.maybe_reset_credits)

        async def expiry_tick() -> None:
            await self._poll(session, self.maybe_expire_premium)

        timers.schedule_periodic(CREDIT_RESET, reset_interval, reset_tick)
        timers.schedule_periodic(EXPIRY_CHECK, expiry_interval, expiry_tick)

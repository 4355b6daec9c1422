"""Premium activation code redemption."""

import asyncio
import logging
from datetime import datetime

from app.services.session import PREMIUM_ACTIVATED, SessionState
from app.services.subscription_ledger import SubscriptionLedger
from app.services.time_integrity import Clock, utc_now
from core import activation
from core.errors import ConflictError, NotFoundError, SignalDeskError, SyncError
from core.models import UserProfile
from core.store_protocol import CodeStore

logger = logging.getLogger(__name__)


class CodeRedemptionService:
    """Validates and consumes one-time activation codes.

    Flow:
    1. Validate the format locally (no store access for malformed input)
    2. Look the code up
    3. Claim it with a conditional update guarded by ``is_used = false``
    4. Extend premium through the ledger
    5. Mark the claim as applied

    A claim whose extension failed stays recorded; the same identity
    retrying the code resumes at step 4. The extension records the code on
    the profile, so a resumed claim whose grant already landed is only
    marked applied and reported as used.
    """

    def __init__(
        self,
        codes: CodeStore,
        ledger: SubscriptionLedger,
        prefix: str = activation.DEFAULT_PREFIX,
        segment: str = activation.DEFAULT_SEGMENT,
        days_tag: str = activation.DEFAULT_DAYS_TAG,
        days: int | None = None,
        clock: Clock = utc_now,
    ):
        self.codes = codes
        self.ledger = ledger
        self.prefix = prefix
        self.segment = segment
        self.days_tag = days_tag
        self.days = days
        self.clock = clock

        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, email: str) -> asyncio.Lock:
        lock = self._locks.get(email)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[email] = lock
        return lock

    async def _mark_applied(self, code: str, now: datetime) -> None:
        try:
            await self.codes.mark_applied(code, now)
        except SyncError as e:
            # Premium is committed at this point; the claim stays pending.
            logger.error(f"Could not mark {code} as applied: {e.message}")

    async def redeem(
        self, session: SessionState, code: str, now: datetime | None = None
    ) -> UserProfile:
        """
        Redeem ``code`` for the session's identity.

        Returns:
            The profile with premium applied

        Raises:
            TamperError: Clock integrity lock is active
            ValidationError: Malformed code
            NotFoundError: Unknown code, or no profile loaded
            ConflictError: Code already used
            SyncError: Code claimed but premium could not be written
        """
        session.ensure_not_tampered()
        if session.profile is None:
            raise NotFoundError("Sign in before redeeming a code")

        normalized = activation.validate_code(code, self.prefix, self.segment, self.days_tag)
        email = session.profile.email

        async with self._lock_for(email):
            now = now or self.clock()

            record = await self.codes.get(normalized)
            if record is None:
                raise NotFoundError("Code not found. Check it and try again.")

            if record.is_used:
                if not (record.used_by == email and record.is_pending):
                    raise ConflictError("This code has already been used.")
                logger.info(f"Resuming pending redemption of {normalized} for {email}")
            elif not await self.codes.claim(normalized, email, now):
                raise ConflictError("This code has already been used.")

            try:
                result = await self.ledger.extend_premium(
                    session, now, self.days, code=normalized
                )
            except SignalDeskError as e:
                logger.error(
                    f"Code {normalized} claimed by {email} but premium not applied: {e.message}"
                )
                raise SyncError(
                    "Your code is reserved but premium could not be activated. "
                    "Try the same code again to finish activation.",
                    previous=getattr(e, "previous", None) or session.profile,
                ) from e

            await self._mark_applied(normalized, now)
            if not result.changed:
                # The profile already carries this grant
                logger.warning(f"Code {normalized} was already applied to {email}")
                raise ConflictError("This code has already been used.")

        expiry = result.profile.premium_expiry
        logger.info(f"Premium activated for {email} until {expiry}")
        await session.notify(
            PREMIUM_ACTIVATED,
            "Premium activated",
            f"Premium access is active until {expiry:%Y-%m-%d %H:%M} UTC.",
        )
        return result.profile

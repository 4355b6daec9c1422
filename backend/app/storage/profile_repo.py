"""Profile repository with version-checked writes."""

import logging

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from core.errors import NetworkError, SyncError
from core.models import Plan, UserProfile
from app.storage.database import ProfileTable, get_database

logger = logging.getLogger(__name__)

_COLUMNS = (
    ProfileTable.email,
    ProfileTable.plan,
    ProfileTable.premium_expiry,
    ProfileTable.credits,
    ProfileTable.last_credit_reset,
    ProfileTable.last_applied_code,
    ProfileTable.version,
)


def _row_to_profile(row) -> UserProfile:
    return UserProfile(
        email=row.email,
        plan=Plan(row.plan) if row.plan else None,
        premium_expiry=row.premium_expiry,
        credits=row.credits,
        last_credit_reset=row.last_credit_reset,
        last_applied_code=row.last_applied_code,
        version=row.version,
    )


class ProfileRepository:
    """Repository for profile operations.

    Every write is a compare-and-swap on ``version`` so concurrent pollers
    cannot clobber each other's changes.
    """

    async def get(self, email: str) -> UserProfile | None:
        """Get the profile for an identity."""
        try:
            async with get_database().session() as session:
                stmt = select(*_COLUMNS).where(ProfileTable.email == email)
                result = await session.execute(stmt)
                row = result.one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"Could not load profile: {e}") from e

        if row is None:
            return None
        return _row_to_profile(row)

    async def create(self, profile: UserProfile) -> UserProfile:
        """Insert a new profile; an existing one is left untouched and returned."""
        try:
            async with get_database().session() as session:
                stmt = insert(ProfileTable).values(
                    email=profile.email,
                    plan=profile.plan.value if profile.plan else None,
                    premium_expiry=profile.premium_expiry,
                    credits=profile.credits,
                    last_credit_reset=profile.last_credit_reset,
                    version=0,
                )
                stmt = stmt.on_conflict_do_nothing(index_elements=["email"])
                await session.execute(stmt)

                result = await session.execute(
                    select(*_COLUMNS).where(ProfileTable.email == profile.email)
                )
                row = result.one()
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not create profile: {e}") from e

        return _row_to_profile(row)

    async def compare_and_swap(
        self, profile: UserProfile, expected_version: int
    ) -> UserProfile | None:
        """Write plan/credits/expiry fields if the stored version matches."""
        fields = profile.mutable_fields()
        if fields["plan"] is not None:
            fields["plan"] = fields["plan"].value

        try:
            async with get_database().session() as session:
                stmt = (
                    update(ProfileTable)
                    .where(
                        ProfileTable.email == profile.email,
                        ProfileTable.version == expected_version,
                    )
                    .values(**fields, version=expected_version + 1)
                    .returning(*_COLUMNS)
                )
                result = await session.execute(stmt)
                row = result.one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise SyncError(f"Could not save profile: {e}") from e

        if row is None:
            logger.debug(
                "Profile CAS miss for %s at version %d", profile.email, expected_version
            )
            return None
        return _row_to_profile(row)

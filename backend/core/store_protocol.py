"""Storage protocols for profiles, activation codes and trade history.

Any backend (live PostgreSQL, in-memory test doubles, etc.) can implement
these protocols and be injected into the services.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from core.models import HistoryItem, PremiumCode, UserProfile


@runtime_checkable
class ProfileStore(Protocol):
    """Remote profile store keyed by identity."""

    async def get(self, email: str) -> UserProfile | None:
        """Read the current profile, or None if the identity is unknown."""
        ...

    async def create(self, profile: UserProfile) -> UserProfile:
        """Insert a new profile. Returns the stored profile."""
        ...

    async def compare_and_swap(
        self, profile: UserProfile, expected_version: int
    ) -> UserProfile | None:
        """Write the mutable fields if the stored version still matches.

        Returns the stored profile with its bumped version, or None on a
        version mismatch. Raises SyncError when the write itself fails.
        """
        ...


@runtime_checkable
class CodeStore(Protocol):
    """Remote activation code store."""

    async def get(self, code: str) -> PremiumCode | None:
        ...

    async def claim(self, code: str, used_by: str, used_at: datetime) -> bool:
        """Set is_used/used_by/used_at only where is_used is false.

        Returns True if this call flipped the flag.
        """
        ...

    async def mark_applied(self, code: str, applied_at: datetime) -> None:
        """Record that the premium extension for a claim has been written."""
        ...


@runtime_checkable
class HistoryStore(Protocol):
    """Append-only trade history per identity."""

    async def add(self, email: str, item: HistoryItem) -> None:
        ...

    async def list(self, email: str) -> list[HistoryItem]:
        """All items for the identity, oldest first."""
        ...

    async def get(self, email: str, item_id: str) -> HistoryItem | None:
        ...

    async def delete(self, email: str, item_id: str) -> bool:
        ...

    async def clear(self, email: str) -> int:
        ...

"""Error taxonomy shared by the ledger, redemption, integrity and signal paths.

Every error carries a user-facing message. Callers decide how to surface it:
validation, lookup, conflict and credit errors are shown as a message for the
single action that failed; a sync error means local and remote state may have
diverged; a tamper error blocks the whole feature surface.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.models.profile import UserProfile


class SignalDeskError(Exception):
    """Base class for all domain errors."""

    kind = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SignalDeskError):
    """Malformed input (e.g. an activation code with the wrong format)."""

    kind = "validation"


class NotFoundError(SignalDeskError):
    """A code or profile does not exist in the store."""

    kind = "not_found"


class ConflictError(SignalDeskError):
    """Code already used, or profile version mismatch after retries."""

    kind = "conflict"

    CODE_USED = "code_used"
    VERSION_CONFLICT = "version_conflict"
    BUSY = "busy"
    CANCELLED = "cancelled"

    def __init__(self, message: str, reason: str = CODE_USED):
        self.reason = reason
        super().__init__(message)


class InsufficientCreditsError(SignalDeskError):
    """Free tier quota exhausted."""

    kind = "insufficient_credits"


class SyncError(SignalDeskError):
    """Remote write failed; ``previous`` holds the pre-mutation profile."""

    kind = "sync"

    def __init__(self, message: str, previous: UserProfile | None = None):
        self.previous = previous
        super().__init__(message)


class NetworkError(SignalDeskError):
    """Clock probe, inference endpoint or store unreachable."""

    kind = "network"


class TamperError(SignalDeskError):
    """Clock integrity failure; suspends every time-sensitive operation."""

    kind = "tamper"

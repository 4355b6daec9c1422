"""Session state shared by the pollers and user actions of one client.

The session owns the profile snapshot, the tamper flag and the selected
symbol. Pollers read the snapshot and submit versioned mutations through
the ledger, which replaces the snapshot only after the remote write
succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from core.errors import TamperError, ValidationError
from core.models import TimeCheckResult, UserProfile

logger = logging.getLogger(__name__)

# Notification kinds
CREDITS_RESTORED = "credits_restored"
PREMIUM_EXPIRED = "premium_expired"
PREMIUM_ACTIVATED = "premium_activated"
SYNC_ERROR = "sync_error"
ACCOUNT_ERROR = "account_error"
TAMPER_DETECTED = "tamper_detected"
TAMPER_CLEARED = "tamper_cleared"
SIGNAL_READY = "signal_ready"
ANALYSIS_ERROR = "analysis_error"
HISTORY_UPDATED = "history_updated"


@dataclass(frozen=True)
class Notification:
    """A user-facing event."""

    kind: str
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


NotificationListener = Callable[[Notification], Awaitable[None]]
SymbolListener = Callable[[str, str], Awaitable[None]]


class SessionState:
    """Single owned state object for one authenticated client."""

    def __init__(
        self,
        default_symbol: str = "BTC/USD",
        free_symbols: list[str] | None = None,
    ):
        self.default_symbol = default_symbol
        self.free_symbols = set(free_symbols or [default_symbol])

        self.profile: UserProfile | None = None
        self.selected_symbol = default_symbol

        self.tampered = False
        self.last_time_check: TimeCheckResult | None = None
        self.integrity_checked = asyncio.Event()

        self._notification_listeners: list[NotificationListener] = []
        self._symbol_listeners: list[SymbolListener] = []

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.profile is not None

    @property
    def email(self) -> str | None:
        return self.profile.email if self.profile else None

    @property
    def is_premium(self) -> bool:
        return self.profile is not None and self.profile.is_premium

    async def sign_out(self) -> None:
        self.profile = None
        await self._set_symbol(self.default_symbol)

    # -------------------------------------------------------------------------
    # Clock integrity
    # -------------------------------------------------------------------------

    def apply_time_check(self, result: TimeCheckResult) -> bool:
        """Record a check result. Returns True if the tamper flag changed."""
        changed = result.tampered != self.tampered
        self.tampered = result.tampered
        self.last_time_check = result
        self.integrity_checked.set()
        return changed

    def ensure_not_tampered(self) -> None:
        """Raise TamperError while the tamper lock is active."""
        if self.tampered:
            raise TamperError(
                "Device date/time manipulation detected. Set your clock to "
                "automatic time to restore access."
            )

    async def wait_for_integrity(self, timeout: float | None = None) -> bool:
        """Wait for the first clock check. Returns False on timeout."""
        try:
            await asyncio.wait_for(self.integrity_checked.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # -------------------------------------------------------------------------
    # Asset selection
    # -------------------------------------------------------------------------

    def requires_premium(self, symbol: str) -> bool:
        return symbol not in self.free_symbols

    async def select_symbol(self, symbol: str) -> None:
        """Change the active symbol. Premium-only symbols need a premium profile."""
        if self.requires_premium(symbol) and not self.is_premium:
            raise ValidationError(f"{symbol} is a premium asset. Activate Premium to unlock it.")
        await self._set_symbol(symbol)

    async def revert_to_free_symbol(self) -> bool:
        """Fall back to the default symbol if the current one needs premium."""
        if not self.requires_premium(self.selected_symbol):
            return False
        await self._set_symbol(self.default_symbol)
        return True

    async def _set_symbol(self, symbol: str) -> None:
        previous = self.selected_symbol
        if symbol == previous:
            return
        self.selected_symbol = symbol
        logger.info(f"Symbol changed: {previous} -> {symbol}")
        for listener in list(self._symbol_listeners):
            await listener(previous, symbol)

    def on_symbol_change(self, listener: SymbolListener) -> None:
        if listener not in self._symbol_listeners:
            self._symbol_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def on_notification(self, listener: NotificationListener) -> None:
        """Register a listener. Duplicate listeners are ignored."""
        if listener not in self._notification_listeners:
            self._notification_listeners.append(listener)

    def off_notification(self, listener: NotificationListener) -> None:
        if listener in self._notification_listeners:
            self._notification_listeners.remove(listener)

    async def notify(self, kind: str, title: str, message: str) -> Notification:
        """Deliver a notification to every listener."""
        notification = Notification(kind=kind, title=title, message=message)
        for listener in list(self._notification_listeners):
            try:
                await listener(notification)
            except Exception as e:
                logger.warning(f"Notification listener failed: {e}")
        return notification

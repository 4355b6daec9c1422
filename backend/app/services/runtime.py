"""Application runtime: wires the session, pollers and services together."""

import logging
from datetime import timedelta

from app.asset_catalog import AssetCatalog
from app.clients.clock_probe import ClockProbe
from app.clients.inference import InferenceClient
from app.config import Settings
from app.services.analysis_scheduler import AnalysisScheduler
from app.services.code_redemption import CodeRedemptionService
from app.services.history_service import HistoryService
from app.services.market_feed import MarketFeed
from app.services.session import SessionState
from app.services.signal_service import SignalService
from app.services.subscription_ledger import SubscriptionLedger
from app.services.time_integrity import Clock, TimeIntegrityMonitor, utc_now
from app.services.timers import CREDIT_RESET, EXPIRY_CHECK, TimerRegistry
from app.storage.watermark_cache import WatermarkCache
from core.errors import NotFoundError
from core.models import TimeCheckResult, UserProfile
from core.store_protocol import CodeStore, HistoryStore, ProfileStore

logger = logging.getLogger(__name__)


class AppRuntime:
    """One client session and everything that acts on it."""

    def __init__(
        self,
        settings: Settings,
        catalog: AssetCatalog,
        profile_store: ProfileStore,
        code_store: CodeStore,
        history_store: HistoryStore,
        probe: ClockProbe | None = None,
        inference: InferenceClient | None = None,
        watermark_cache: WatermarkCache | None = None,
        clock: Clock = utc_now,
        seed: int | None = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.clock = clock

        default_asset = catalog.get(settings.default_symbol)
        if default_asset is None:
            raise ValueError(f"Default symbol {settings.default_symbol} is not in the asset catalog")

        self.session = SessionState(settings.default_symbol, settings.free_symbols)
        self.timers = TimerRegistry()

        self.monitor = TimeIntegrityMonitor(
            probe,
            watermark_cache,
            tolerance=timedelta(seconds=settings.time_tolerance_seconds),
            clock=clock,
        )
        self.ledger = SubscriptionLedger(
            profile_store,
            initial_credits=settings.initial_credits,
            credit_reset_interval=timedelta(hours=settings.credit_reset_hours),
            premium_days=settings.premium_days,
            max_retries=settings.mutation_retries,
            clock=clock,
        )
        self.redemption = CodeRedemptionService(
            code_store,
            self.ledger,
            prefix=settings.code_prefix,
            segment=settings.code_segment,
            days_tag=settings.code_days_tag,
            days=settings.premium_days,
            clock=clock,
        )
        self.signals = SignalService(inference)
        self.feed = MarketFeed(default_asset, settings.series_length, seed=seed, clock=clock)
        self.scheduler = AnalysisScheduler(
            self.ledger,
            self.signals,
            self.feed.snapshot,
            min_seconds=settings.analysis_min_seconds,
            max_seconds=settings.analysis_max_seconds,
            tick_seconds=settings.analysis_tick_seconds,
            cooldown_seconds=settings.analysis_cooldown_seconds,
            error_cooldown_seconds=settings.analysis_error_cooldown_seconds,
            seed=seed,
        )
        self.history = HistoryService(history_store, clock)

        self.session.on_symbol_change(self._on_symbol_change)

    @classmethod
    def from_settings(cls, settings: Settings, catalog: AssetCatalog) -> "AppRuntime":
        """Build the runtime against PostgreSQL, Redis and the HTTP backends."""
        from app.storage import (
            HistoryRepository,
            PremiumCodeRepository,
            ProfileRepository,
        )

        inference = None
        if settings.inference_url:
            inference = InferenceClient(
                settings.inference_url,
                settings.inference_api_key,
                timeout=settings.inference_timeout,
            )

        return cls(
            settings,
            catalog,
            profile_store=ProfileRepository(),
            code_store=PremiumCodeRepository(),
            history_store=HistoryRepository(),
            probe=ClockProbe(settings.backend_url, settings.backend_api_key),
            inference=inference,
            watermark_cache=WatermarkCache(settings.device_id),
        )

    async def _on_symbol_change(self, previous: str, current: str) -> None:
        await self.scheduler.on_symbol_change(previous, current)
        asset = self.catalog.get(current)
        if asset is not None:
            self.feed.set_asset(asset)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the clock check and the market feed."""
        self.monitor.start(self.session, self.timers, self.settings.clock_check_interval)
        self.feed.start(self.session, self.timers, self.settings.feed_tick_seconds)
        logger.info("Runtime started")

    async def stop(self) -> None:
        """Cancel every timer and close HTTP clients."""
        self.scheduler.cancel()
        self.timers.cancel_all()
        await self.monitor.close()
        await self.signals.close()
        logger.info("Runtime stopped")

    async def sign_in(self, email: str, register: bool = True) -> UserProfile:
        """
        Load (or create) the profile for ``email`` and start the ledger pollers.

        Raises:
            TamperError: Clock integrity lock is active
            NotFoundError: Unknown identity and ``register`` is False
        """
        email = email.strip().lower()
        if not email:
            raise NotFoundError("An email is required to sign in")

        if not self.session.integrity_checked.is_set():
            await self.monitor.refresh(self.session)
        self.session.ensure_not_tampered()

        if self.session.email is not None and self.session.email != email:
            await self.sign_out()

        if register and await self.ledger.store.get(email) is None:
            await self.ledger.register(email)

        profile = await self.ledger.load(self.session, email)
        self.ledger.start(
            self.session,
            self.timers,
            reset_interval=self.settings.credit_reset_interval,
            expiry_interval=self.settings.expiry_check_interval,
        )
        logger.info(f"Session started for {email} ({profile.plan.value})")
        return profile

    async def sign_out(self) -> None:
        """End the session: stop the ledger pollers and any running analysis."""
        email = self.session.email
        self.timers.cancel(CREDIT_RESET)
        self.timers.cancel(EXPIRY_CHECK)
        self.scheduler.cancel()
        await self.session.sign_out()
        self.scheduler.last_result = None
        if email:
            logger.info(f"Session ended for {email}")

    async def foreground(self) -> TimeCheckResult:
        """Client regained visibility."""
        return await self.monitor.on_foreground(self.session)

    async def select_symbol(self, symbol: str) -> None:
        """
        Raises:
            TamperError: Clock integrity lock is active
            NotFoundError: Unknown symbol
            ValidationError: Premium-only symbol on a FREE profile
        """
        self.session.ensure_not_tampered()
        if self.catalog.get(symbol) is None:
            raise NotFoundError(f"Unknown asset {symbol}")
        await self.session.select_symbol(symbol)

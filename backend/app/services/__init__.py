"""Business services."""

from app.services.timers import TimerRegistry
from app.services.session import Notification, SessionState
from app.services.time_integrity import TimeIntegrityMonitor
from app.services.subscription_ledger import MutationResult, SubscriptionLedger
from app.services.code_redemption import CodeRedemptionService
from app.services.signal_service import SignalService
from app.services.market_feed import MarketFeed
from app.services.analysis_scheduler import AnalysisScheduler, AnalysisState
from app.services.history_service import HistoryService
from app.services.runtime import AppRuntime

__all__ = [
    "TimerRegistry",
    "Notification",
    "SessionState",
    "TimeIntegrityMonitor",
    "MutationResult",
    "SubscriptionLedger",
    "CodeRedemptionService",
    "SignalService",
    "MarketFeed",
    "AnalysisScheduler",
    "AnalysisState",
    "HistoryService",
    "AppRuntime",
]

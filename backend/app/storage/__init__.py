"""Data storage layer."""

from app.storage.database import Database, get_database, init_database
from app.storage.profile_repo import ProfileRepository
from app.storage.code_repo import PremiumCodeRepository
from app.storage.history_repo import HistoryRepository
from app.storage.watermark_cache import WatermarkCache
from app.storage import cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "ProfileRepository",
    "PremiumCodeRepository",
    "HistoryRepository",
    "WatermarkCache",
    "cache",
]

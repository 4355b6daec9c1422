"""Clock-integrity watermark persistence.

Stores the last observed device time per device so a clock moved backward
across a restart is still detected.

Data structure:
- watermark:{device_id} -> JSON {"ts": <epoch milliseconds>}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.storage import cache

logger = logging.getLogger(__name__)


def _watermark_key(device_id: str) -> str:
    """Get the cache key for a device watermark."""
    return f"{cache.KEY_PREFIX_WATERMARK}{device_id}"


class WatermarkCache:
    """Watermark store backed by the Redis cache."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    async def load(self) -> datetime | None:
        """Load the persisted watermark, or None if absent/unavailable."""
        if not cache.is_cache_available():
            return None

        data = await cache.get_json(_watermark_key(self.device_id))
        if not data or "ts" not in data:
            return None

        try:
            return datetime.fromtimestamp(int(data["ts"]) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Ignoring corrupt watermark for {self.device_id}: {e}")
            return None

    async def save(self, watermark: datetime) -> bool:
        """Persist the watermark. Returns True if saved."""
        if not cache.is_cache_available():
            return False

        ts = int(watermark.timestamp() * 1000)
        return await cache.set_json(_watermark_key(self.device_id), {"ts": ts})

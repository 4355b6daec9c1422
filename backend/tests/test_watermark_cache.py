"""Tests for watermark persistence."""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from app.storage import watermark_cache
from app.storage.watermark_cache import WatermarkCache


class TestWatermarkCache:
    """Tests for WatermarkCache (per device)."""

    @pytest.mark.asyncio
    async def test_save(self):
        wm = WatermarkCache("device-1")
        moment = datetime(2024, 6, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)

        with patch.object(watermark_cache.cache, 'is_cache_available', return_value=True):
            with patch.object(watermark_cache.cache, 'set_json', new_callable=AsyncMock, return_value=True) as mock_set:
                assert await wm.save(moment) is True

                key, data = mock_set.call_args[0][:2]
                assert key == "watermark:device-1"
                assert data == {"ts": 1717243200250}

    @pytest.mark.asyncio
    async def test_load(self):
        wm = WatermarkCache("device-1")
        with patch.object(watermark_cache.cache, 'is_cache_available', return_value=True):
            with patch.object(watermark_cache.cache, 'get_json', new_callable=AsyncMock, return_value={"ts": 1717243200250}):
                loaded = await wm.load()

        assert loaded == datetime(2024, 6, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_cache_unavailable(self):
        wm = WatermarkCache("device-1")
        with patch.object(watermark_cache.cache, 'is_cache_available', return_value=False):
            assert await wm.load() is None
            assert await wm.save(datetime.now(timezone.utc)) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cached", [None, {}, {"ts": "garbage"}])
    async def test_missing_or_corrupt(self, cached):
        wm = WatermarkCache("device-1")
        with patch.object(watermark_cache.cache, 'is_cache_available', return_value=True):
            with patch.object(watermark_cache.cache, 'get_json', new_callable=AsyncMock, return_value=cached):
                assert await wm.load() is None

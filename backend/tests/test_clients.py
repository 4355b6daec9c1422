"""Tests for the HTTP clients."""

import httpx
import orjson
import pytest
from datetime import datetime, timezone

from app.clients.clock_probe import ClockProbe
from app.clients.inference import InferenceClient, extract_json_object
from core.errors import NetworkError


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object('{"signal": "BUY"}') == {"signal": "BUY"}

    def test_json_wrapped_in_prose(self):
        body = 'Here is the analysis:\n```json\n{"signal": "SELL", "confidence": 90}\n```'
        assert extract_json_object(body) == {"signal": "SELL", "confidence": 90}

    @pytest.mark.parametrize("body", ["no json here", "[1, 2, 3]", "{broken"])
    def test_unusable(self, body):
        with pytest.raises(ValueError):
            extract_json_object(body)


class TestClockProbe:
    @pytest.mark.asyncio
    async def test_reads_date_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(401, headers={"Date": "Sat, 01 Jun 2024 12:00:00 GMT"})

        probe = ClockProbe("https://backend.example", api_key="anon", transport=httpx.MockTransport(handler))
        try:
            server_time = await probe.server_time()
        finally:
            await probe.close()

        assert server_time == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        assert seen[0].method == "HEAD"
        assert seen[0].headers["apikey"] == "anon"

    @pytest.mark.asyncio
    async def test_missing_date_header(self):
        probe = ClockProbe(
            "https://backend.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        assert await probe.server_time() is None
        await probe.close()

    @pytest.mark.asyncio
    async def test_garbage_date_header(self):
        probe = ClockProbe(
            "https://backend.example",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, headers={"Date": "not a date"})
            ),
        )
        assert await probe.server_time() is None
        await probe.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        probe = ClockProbe("https://backend.example", transport=httpx.MockTransport(handler))
        with pytest.raises(NetworkError):
            await probe.server_time()
        await probe.close()


class TestInferenceClient:
    @pytest.mark.asyncio
    async def test_analyze(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = orjson.loads(request.content)
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(200, text='Sure. {"signal": "BUY", "confidence": 88}')

        client = InferenceClient(
            "https://inference.example/analyze", api_key="key", transport=httpx.MockTransport(handler)
        )
        try:
            result = await client.analyze({"symbol": "BTC/USD", "RSI": 28.5})
        finally:
            await client.close()

        assert result == {"signal": "BUY", "confidence": 88}
        assert captured["body"] == {"symbol": "BTC/USD", "RSI": 28.5}
        assert captured["auth"] == "Bearer key"

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = InferenceClient(
            "https://inference.example/analyze",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        with pytest.raises(NetworkError):
            await client.analyze({})
        await client.close()

    @pytest.mark.asyncio
    async def test_unusable_body(self):
        client = InferenceClient(
            "https://inference.example/analyze",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="sorry")),
        )
        with pytest.raises(NetworkError):
            await client.analyze({})
        await client.close()

    def test_disabled_without_url(self):
        assert not InferenceClient("").enabled

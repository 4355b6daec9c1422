"""API tests against an in-memory runtime."""

import asyncio
import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from app.api import register_exception_handlers, router
from app.api.routes import SessionRequest
from app.asset_catalog import AssetCatalog, DEFAULT_ASSETS
from app.config import Settings
from app.services.runtime import AppRuntime
from core.models import TamperReason, TimeCheckResult

from fakes import FakeClock, InMemoryCodeStore, InMemoryHistoryStore, InMemoryProfileStore

CODE = "VERTX-TRAD-AB12-CD34-30"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        analysis_min_seconds=0.05,
        analysis_max_seconds=0.05,
        analysis_tick_seconds=0.01,
        analysis_cooldown_seconds=30,
    )


@pytest.fixture
def stores():
    return InMemoryProfileStore(), InMemoryCodeStore([CODE]), InMemoryHistoryStore()


@pytest_asyncio.fixture
async def runtime(settings, stores):
    profiles, codes, history = stores
    runtime = AppRuntime(
        settings,
        AssetCatalog(assets=list(DEFAULT_ASSETS)),
        profiles,
        codes,
        history,
        clock=FakeClock(),
        seed=11,
    )
    yield runtime
    await runtime.stop()


@pytest_asyncio.fixture
async def client(runtime):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api")
    app.state.runtime = runtime

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def sign_in(client, email="Trader@Example.com"):
    response = await client.post("/api/session", json={"email": email})
    assert response.status_code == 200
    return response.json()


class TestSession:
    @pytest.mark.asyncio
    async def test_sign_in_registers(self, client, stores):
        data = await sign_in(client)

        assert data["email"] == "trader@example.com"
        assert data["plan"] == "FREE"
        assert data["credits"] == 15
        assert "trader@example.com" in stores[0].profiles

    @pytest.mark.asyncio
    async def test_sign_in_unknown_without_register(self, client):
        response = await client.post(
            "/api/session", json={"email": "nobody@example.com", "register": False}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_session_request_wire_name(self):
        assert "register" not in SessionRequest.model_fields
        assert SessionRequest.model_validate({"email": "a@b.c"}).create_if_missing
        body = SessionRequest.model_validate({"email": "a@b.c", "register": False})
        assert body.create_if_missing is False

    @pytest.mark.asyncio
    async def test_profile_requires_sign_in(self, client):
        response = await client.get("/api/profile")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_sign_out(self, client, runtime):
        await sign_in(client)
        response = await client.delete("/api/session")
        assert response.status_code == 200
        assert not runtime.session.is_authenticated

    @pytest.mark.asyncio
    async def test_status(self, client):
        await sign_in(client)
        data = (await client.get("/api/status")).json()

        assert data["status"] == "running"
        assert data["authenticated"] is True
        assert data["analysis_state"] == "IDLE"
        assert "credit-reset" in data["timers"]


class TestMarket:
    @pytest.mark.asyncio
    async def test_market_window(self, client):
        data = (await client.get("/api/market")).json()

        assert data["symbol"] == "BTC/USD"
        assert len(data["points"]) == 60
        premium = {a["symbol"]: a["premium"] for a in data["assets"]}
        assert premium["BTC/USD"] is False
        assert premium["XAU/USD"] is True

    @pytest.mark.asyncio
    async def test_premium_symbol_rejected_on_free(self, client):
        await sign_in(client)
        response = await client.put("/api/market/symbol", json={"symbol": "XAU/USD"})
        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, client):
        response = await client.put("/api/market/symbol", json={"symbol": "DOGE/USD"})
        assert response.status_code == 404


class TestAnalysisFlow:
    @pytest.mark.asyncio
    async def test_analysis_then_history(self, client, runtime):
        await sign_in(client)

        response = await client.post("/api/analysis")
        assert response.status_code == 202
        assert response.json()["state"] == "RUNNING"

        busy = await client.post("/api/analysis")
        assert busy.status_code == 409
        assert busy.json()["reason"] == "busy"

        for _ in range(200):
            if runtime.scheduler.last_result is not None:
                break
            await asyncio.sleep(0.01)

        data = (await client.get("/api/analysis")).json()
        assert data["state"] == "COOLDOWN"
        assert data["result"]["symbol"] == "BTC/USD"
        assert (await client.get("/api/profile")).json()["credits"] == 14

        recorded = await client.post("/api/history", json={"outcome": "WIN"})
        assert recorded.status_code == 201
        item_id = recorded.json()["id"]

        duplicate = await client.post("/api/history", json={"outcome": "LOSS"})
        assert duplicate.status_code == 409

        stats = (await client.get("/api/history/stats")).json()
        assert stats["total"] == 1
        assert stats["win_rate"] == 100

        export = await client.get("/api/history/export")
        assert export.headers["content-type"].startswith("text/csv")
        assert export.text.splitlines()[1].endswith(data["result"]["current_price"])

        assert (await client.delete(f"/api/history/{item_id}")).status_code == 200
        assert (await client.get("/api/history")).json() == []

    @pytest.mark.asyncio
    async def test_history_without_analysis(self, client):
        await sign_in(client)
        response = await client.post("/api/history", json={"outcome": "WIN"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_out_of_credits(self, client, stores):
        await sign_in(client)
        profiles = stores[0]
        current = profiles.profiles["trader@example.com"]
        profiles.put(current.model_copy(update={"credits": 0, "version": current.version + 1}))
        await sign_in(client)

        response = await client.post("/api/analysis")
        assert response.status_code == 402


class TestPremium:
    @pytest.mark.asyncio
    async def test_redeem_unlocks_premium_assets(self, client):
        await sign_in(client)

        response = await client.post("/api/premium/redeem", json={"code": CODE})
        assert response.status_code == 200
        data = response.json()
        assert data["plan"] == "PREMIUM"
        assert data["premium_remaining_seconds"] == 30 * 24 * 3600

        selected = await client.put("/api/market/symbol", json={"symbol": "XAU/USD"})
        assert selected.json() == {"symbol": "XAU/USD"}

        again = await client.post("/api/premium/redeem", json={"code": CODE})
        assert again.status_code == 409
        assert again.json()["reason"] == "code_used"

    @pytest.mark.asyncio
    async def test_malformed_code(self, client):
        await sign_in(client)
        response = await client.post("/api/premium/redeem", json={"code": "nope"})
        assert response.status_code == 400


class TestTamperLock:
    @pytest.mark.asyncio
    async def test_locked_surface(self, client, runtime):
        await sign_in(client)
        runtime.session.apply_time_check(
            TimeCheckResult(tampered=True, reason=TamperReason.BACKWARD)
        )

        assert (await client.post("/api/analysis")).status_code == 423
        assert (await client.get("/api/market")).status_code == 423
        assert (await client.post("/api/premium/redeem", json={"code": CODE})).status_code == 423
        assert (await client.get("/api/profile")).status_code == 423
        assert (await client.get("/api/history")).status_code == 423
        assert (await client.post("/api/history", json={"outcome": "WIN"})).status_code == 423
        assert (await client.delete("/api/history")).status_code == 423

        status = (await client.get("/api/status")).json()
        assert status["status"] == "locked"

        check = (await client.get("/api/time-check")).json()
        assert check["tampered"] is True
        assert check["reason"] == "backward"

        # Foreground re-check with a sane clock lifts the lock
        check = (await client.post("/api/session/foreground")).json()
        assert check["tampered"] is False
        assert (await client.get("/api/market")).status_code == 200

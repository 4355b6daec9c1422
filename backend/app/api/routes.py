"""REST API routes."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from app.services.runtime import AppRuntime
from core.errors import NotFoundError
from core.models import TradeOutcome, UserProfile
from core.subscription import premium_remaining

logger = logging.getLogger(__name__)

router = APIRouter()


# Request models
class SessionRequest(BaseModel):
    """Sign-in request. Unknown identities are created unless ``register`` is false."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    create_if_missing: bool = Field(default=True, alias="register")


class SymbolRequest(BaseModel):
    symbol: str


class RedeemRequest(BaseModel):
    code: str


class OutcomeRequest(BaseModel):
    """Self-reported result of the last analysis."""

    outcome: TradeOutcome


# Response models
class ProfileResponse(BaseModel):
    """Profile response model."""

    email: str
    plan: str
    premium_expiry: Optional[datetime] = None
    premium_remaining_seconds: int
    credits: int
    last_credit_reset: Optional[datetime] = None


class TimeCheckResponse(BaseModel):
    tampered: bool
    reason: Optional[str] = None
    device_time: Optional[datetime] = None
    server_time: Optional[datetime] = None


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    authenticated: bool
    tampered: bool
    symbol: str
    timers: list[str]
    analysis_state: str


def get_runtime(request: Request) -> AppRuntime:
    return request.app.state.runtime


def _profile_response(runtime: AppRuntime, profile: UserProfile) -> ProfileResponse:
    remaining = premium_remaining(profile, runtime.clock())
    return ProfileResponse(
        email=profile.email,
        plan=profile.plan.value if profile.plan else "FREE",
        premium_expiry=profile.premium_expiry,
        premium_remaining_seconds=int(remaining.total_seconds()),
        credits=profile.credits or 0,
        last_credit_reset=profile.last_credit_reset,
    )


def _require_profile(runtime: AppRuntime) -> UserProfile:
    if runtime.session.profile is None:
        raise NotFoundError("Not signed in")
    return runtime.session.profile


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------

@router.post("/session", response_model=ProfileResponse)
async def sign_in(body: SessionRequest, runtime: AppRuntime = Depends(get_runtime)):
    """Sign in (registering unknown identities by default)."""
    profile = await runtime.sign_in(body.email, register=body.create_if_missing)
    return _profile_response(runtime, profile)


@router.delete("/session")
async def sign_out(runtime: AppRuntime = Depends(get_runtime)):
    await runtime.sign_out()
    return {"success": True}


@router.post("/session/foreground", response_model=TimeCheckResponse)
async def foreground(runtime: AppRuntime = Depends(get_runtime)):
    """Client regained visibility: re-check the clock."""
    result = await runtime.foreground()
    return TimeCheckResponse(**result.model_dump(mode="json"))


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(runtime: AppRuntime = Depends(get_runtime)):
    runtime.session.ensure_not_tampered()
    return _profile_response(runtime, _require_profile(runtime))


@router.get("/time-check", response_model=TimeCheckResponse)
async def get_time_check(runtime: AppRuntime = Depends(get_runtime)):
    """Last clock check result (runs one if none has completed yet)."""
    result = runtime.session.last_time_check
    if result is None:
        result = await runtime.foreground()
    return TimeCheckResponse(**result.model_dump(mode="json"))


# -----------------------------------------------------------------------------
# Market
# -----------------------------------------------------------------------------

@router.get("/market")
async def get_market(runtime: AppRuntime = Depends(get_runtime)):
    """Current asset, its price window and the catalog."""
    runtime.session.ensure_not_tampered()
    series = runtime.feed.snapshot()
    asset = runtime.feed.asset
    return {
        "symbol": asset.symbol,
        "name": asset.name,
        "volatility": asset.volatility,
        "points": [
            {"time": p.time.isoformat(), "price": float(p.price), "volume": p.volume}
            for p in series.points
        ],
        "assets": [
            {
                "symbol": a.symbol,
                "name": a.name,
                "premium": runtime.session.requires_premium(a.symbol),
            }
            for a in runtime.catalog.assets
        ],
    }


@router.put("/market/symbol")
async def select_symbol(body: SymbolRequest, runtime: AppRuntime = Depends(get_runtime)):
    await runtime.select_symbol(body.symbol)
    return {"symbol": runtime.session.selected_symbol}


# -----------------------------------------------------------------------------
# Analysis
# -----------------------------------------------------------------------------

@router.post("/analysis", status_code=202)
async def start_analysis(runtime: AppRuntime = Depends(get_runtime)):
    """Start an analysis cycle for the selected symbol."""
    await runtime.scheduler.start(runtime.session, runtime.timers)
    return runtime.scheduler.to_dict()


@router.get("/analysis")
async def get_analysis(runtime: AppRuntime = Depends(get_runtime)):
    """State, progress, status label, cooldown and last result."""
    return runtime.scheduler.to_dict()


@router.delete("/analysis")
async def cancel_analysis(runtime: AppRuntime = Depends(get_runtime)):
    cancelled = runtime.scheduler.cancel()
    return {"cancelled": cancelled}


# -----------------------------------------------------------------------------
# Premium
# -----------------------------------------------------------------------------

@router.post("/premium/redeem", response_model=ProfileResponse)
async def redeem_code(body: RedeemRequest, runtime: AppRuntime = Depends(get_runtime)):
    profile = await runtime.redemption.redeem(runtime.session, body.code)
    return _profile_response(runtime, profile)


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------

@router.get("/history")
async def list_history(
    symbol: Optional[str] = Query(None),
    outcome: Optional[TradeOutcome] = Query(None),
    runtime: AppRuntime = Depends(get_runtime),
):
    items = await runtime.history.list(runtime.session, symbol, outcome)
    return [item.model_dump(mode="json") for item in items]


@router.post("/history", status_code=201)
async def record_outcome(body: OutcomeRequest, runtime: AppRuntime = Depends(get_runtime)):
    """Register WIN/LOSS for the last completed analysis."""
    runtime.session.ensure_not_tampered()
    analysis = runtime.scheduler.last_result
    if analysis is None:
        raise NotFoundError("No analysis to register")
    item = await runtime.history.record(runtime.session, analysis, body.outcome)
    return item.model_dump(mode="json")


@router.get("/history/stats")
async def history_stats(runtime: AppRuntime = Depends(get_runtime)):
    stats = await runtime.history.stats(runtime.session)
    return stats.to_dict()


@router.get("/history/export")
async def export_history(runtime: AppRuntime = Depends(get_runtime)):
    csv_text = await runtime.history.export_csv(runtime.session)
    return PlainTextResponse(
        csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="history.csv"'},
    )


@router.delete("/history/{item_id}")
async def delete_history_item(item_id: str, runtime: AppRuntime = Depends(get_runtime)):
    await runtime.history.delete(runtime.session, item_id)
    return {"success": True}


@router.delete("/history")
async def clear_history(runtime: AppRuntime = Depends(get_runtime)):
    removed = await runtime.history.clear(runtime.session)
    return {"removed": removed}


# -----------------------------------------------------------------------------
# Status
# -----------------------------------------------------------------------------

@router.get("/status", response_model=SystemStatus)
async def get_status(runtime: AppRuntime = Depends(get_runtime)):
    """Get system status."""
    return SystemStatus(
        status="locked" if runtime.session.tampered else "running",
        version="0.1.0",
        authenticated=runtime.session.is_authenticated,
        tampered=runtime.session.tampered,
        symbol=runtime.session.selected_symbol,
        timers=runtime.timers.purposes,
        analysis_state=runtime.scheduler.state.value,
    )

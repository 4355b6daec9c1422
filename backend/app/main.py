"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import manager, register_exception_handlers, router, websocket_endpoint
from app.asset_catalog import load_asset_catalog
from app.config import get_settings
from app.services.runtime import AppRuntime
from app.storage import cache, get_database, init_database

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Trade Signal...")

    db_initialized = False
    cache_initialized = False
    runtime: AppRuntime | None = None

    try:
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Redis only persists the clock watermark; run without it if absent
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            cache_initialized = True
            if not cache.is_cache_available():
                logger.warning("Redis cache unavailable - watermark kept in memory only")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - watermark kept in memory only")

        settings = get_settings()
        catalog = load_asset_catalog()
        runtime = AppRuntime.from_settings(settings, catalog)
        runtime.session.on_notification(manager.send_notification)
        runtime.start()
        app.state.runtime = runtime

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if runtime is not None:
            await runtime.stop()
        if cache_initialized:
            await cache.close_cache()
        if db_initialized:
            await get_database().close()
        raise

    yield

    logger.info("Shutting down...")
    await runtime.stop()
    await cache.close_cache()

    try:
        await get_database().close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Trade Signal",
    description="Freemium trade-signal service with clock-integrity protection",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(router, prefix="/api")
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"name": "Trade Signal", "version": "0.1.0", "docs": "/docs"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()

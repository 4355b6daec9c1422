"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Profile / code / history store
    database_url: str = "postgresql://localhost/trade_signal"

    # Redis (watermark persistence)
    redis_url: str = "redis://localhost:6379/0"

    # Hosted backend (clock probe target)
    backend_url: str = "http://localhost:54321"
    backend_api_key: str = ""

    # Inference endpoint (empty URL disables it)
    inference_url: str = ""
    inference_api_key: str = ""
    inference_timeout: float = 20.0

    # Clock integrity
    device_id: str = "local"
    time_tolerance_seconds: float = 300.0
    clock_check_interval: float = 30.0

    # Subscription ledger
    initial_credits: int = 15
    credit_reset_hours: float = 4.0
    credit_reset_interval: float = 60.0
    expiry_check_interval: float = 1.0
    premium_days: int = 30
    mutation_retries: int = 3

    # Activation codes
    code_prefix: str = "VERTX"
    code_segment: str = "TRAD"
    code_days_tag: str = "30"

    # Analysis scheduler
    analysis_min_seconds: float = 50.0
    analysis_max_seconds: float = 60.0
    analysis_tick_seconds: float = 0.2
    analysis_cooldown_seconds: float = 30.0
    analysis_error_cooldown_seconds: float = 5.0

    # Market feed
    series_length: int = 60
    feed_tick_seconds: float = 1.0
    default_symbol: str = "BTC/USD"
    free_symbols: list[str] = ["BTC/USD"]

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

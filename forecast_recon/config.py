# forecast_recon/config.py

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Forecast Recon API"
    app_env: str = "development"
    debug: bool = True
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Supabase
    supabase_url: str
    supabase_service_role_key: str

    # Fuzzy matching config
    fuzzy_amount_tolerance_percent: float = 1.0
    fuzzy_amount_tolerance_floor: float = 1.0
    fuzzy_amount_tolerance_ceiling: float = 100000.0
    fuzzy_weight_amount: float = 60.0
    fuzzy_weight_date: float = 25.0
    fuzzy_weight_text: float = 15.0
    fuzzy_accept_threshold: float = 60.0

    # Run limits
    run_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()

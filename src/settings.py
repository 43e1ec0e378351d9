"""Centralized settings for the Farmheart notification engine.

Uses pydantic-settings to load from environment variables (prefixed FARMHEART_)
with defaults suitable for local development.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Farmheart settings loaded from environment variables."""

    # --- Database ---
    database_url: str = "sqlite:///farmheart.db"
    database_echo: bool = False

    # --- Notification engine ---
    notification_cooldown_seconds: int = 3600
    notification_retention_days: int = 30
    stat_history_retention_days: int = 7
    default_region: str = "Sandbox Island"

    # --- Sweep driver ---
    sweep_interval_seconds: int = 300
    sweep_max_workers: int = 4

    # --- SMTP ---
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_timeout_seconds: int = 30
    from_email: str = "noreply@farmheart.com"
    public_base_url: str = "http://localhost:3000"

    model_config = {
        "env_prefix": "FARMHEART_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()

"""
ShelfGuard Engine Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "ShelfGuard"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Offline queue store
    database_url: str = "sqlite+aiosqlite:///./shelfguard_offline.db"
    database_echo: bool = False

    # Redis (alert fan-out to dashboards)
    redis_url: str = "redis://localhost:6379/0"

    # Email
    sendgrid_api_key: str = ""
    alert_from_email: str = "alerts@shelfguard.app"
    alert_recipients: list[str] = []

    # ── Compliance Engine Defaults ───────────────────────────────────
    default_timezone: str = "UTC"
    default_location: str = ""
    warning_days: int = 3
    sla_threshold_minutes: int = 30
    check_interval_minutes: float = 15
    result_channel_size: int = 16

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_engine_guardrails(settings)
    return settings


def _enforce_engine_guardrails(settings: Settings) -> None:
    try:
        ZoneInfo(settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown default_timezone: {settings.default_timezone!r}") from exc
    if settings.check_interval_minutes <= 0:
        raise ValueError("check_interval_minutes must be positive")
    if settings.result_channel_size <= 0:
        raise ValueError("result_channel_size must be positive")
    if settings.warning_days < 0:
        raise ValueError("warning_days must not be negative")
    if settings.sla_threshold_minutes < 0:
        raise ValueError("sla_threshold_minutes must not be negative")

    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if not is_local and settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")

import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

STREAK_BACKENDS = ("memory", "sql", "http")


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database (users.streak_data blob store)
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Auth: HS256 bearer tokens, X-User-Id header as fallback
    JWT_SECRET: Optional[str] = None

    # Streak persistence
    STREAK_BACKEND: str = "memory"  # memory | sql | http
    STREAK_REMOTE_URL: Optional[str] = None  # e.g. https://riven.example.com
    STREAK_REMOTE_TIMEOUT_SECONDS: float = 10.0

    # Streak rules
    STREAK_GRACE_HOURS: float = 48.0
    STREAK_AT_RISK_HOURS: float = 24.0
    STREAK_HISTORY_LIMIT: int = 10
    STREAK_CHECK_INTERVAL_SECONDS: float = 60.0
    STREAK_TIMEZONE: str = "UTC"  # IANA name used for calendar-day comparisons
    STREAK_SESSION_IDLE_SECONDS: float = 1800.0  # registry drops engines unused this long

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate configuration for the selected streak backend.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("riven")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []

    backend = (cfg.STREAK_BACKEND or "").lower()
    if backend not in STREAK_BACKENDS:
        problems.append(f"Unknown STREAK_BACKEND: {cfg.STREAK_BACKEND!r}")

    required_keys = []
    if backend == "sql":
        required_keys.append("DATABASE_URL")
    if backend == "http":
        required_keys.append("STREAK_REMOTE_URL")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        problems.append(f"Missing required configuration: {', '.join(missing)}")

    if cfg.STREAK_AT_RISK_HOURS >= cfg.STREAK_GRACE_HOURS:
        problems.append("STREAK_AT_RISK_HOURS must be lower than STREAK_GRACE_HOURS")

    if cfg.STREAK_SESSION_IDLE_SECONDS <= 0:
        problems.append("STREAK_SESSION_IDLE_SECONDS must be positive")

    for message in problems:
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return not problems

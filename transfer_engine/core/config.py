from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Matching tunables here are only defaults: every analysis request may
    override them, and the engine clamps whatever it receives.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: selects the log renderer."""

    DEBUG: bool = False
    """Enable per-candidate debug logging in the scorer."""

    LOG_LEVEL: str = "INFO"
    """Root log level passed to logging.basicConfig."""

    # Matching defaults
    TRANSFER_WINDOW_DAYS: int = 1
    """Maximum day gap between the two legs of a transfer (clamped to 0-7)."""

    TRANSFER_MIN_MATCHED: float = 0.85
    """Score at or above which a resolved pair is matched."""

    TRANSFER_MIN_UNCERTAIN: float = 0.60
    """Score at or above which a resolved pair is kept as uncertain."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()

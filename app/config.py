from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Runtime configuration for the restyle service.

    Values come from the process environment (optionally populated from a
    `.env` file at startup). Everything has a default except the platform
    generation key, which may also be supplied per user by the account service.
    """

    google_api_key: str | None
    model: str
    api_base_url: str
    generation_timeout_seconds: float
    fetch_timeout_seconds: float
    storage_dir: Path
    public_base_url: str
    max_requests_per_minute: int
    burst_capacity: int
    rate_limit_timeout_seconds: float
    output_log: Path


def load_settings() -> Settings:
    """Build a fresh Settings snapshot from the current environment."""
    return Settings(
        google_api_key=os.environ.get("GOOGLE_API_KEY") or None,
        model=os.getenv("RESTYLE_MODEL", "gemini-3-pro-image-preview"),
        api_base_url=os.getenv(
            "RESTYLE_API_BASE_URL",
            "https://generativelanguage.googleapis.com/v1beta",
        ).rstrip("/"),
        generation_timeout_seconds=_env_float("RESTYLE_GENERATION_TIMEOUT_SECONDS", 120.0),
        fetch_timeout_seconds=_env_float("RESTYLE_FETCH_TIMEOUT_SECONDS", 30.0),
        storage_dir=Path(os.getenv("RESTYLE_STORAGE_DIR", "storage/images")),
        public_base_url=os.getenv("RESTYLE_PUBLIC_BASE_URL", "/media").rstrip("/"),
        max_requests_per_minute=_env_int("RESTYLE_MAX_REQUESTS_PER_MINUTE", 30),
        burst_capacity=_env_int("RESTYLE_BURST_CAPACITY", 5),
        rate_limit_timeout_seconds=_env_float("RESTYLE_RATE_LIMIT_TIMEOUT_SECONDS", 30.0),
        output_log=Path(os.getenv("RESTYLE_OUTPUT_LOG", "output.txt")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide settings.

    Cached so every module sees the same snapshot; tests call
    `get_settings.cache_clear()` after changing the environment.
    """
    return load_settings()

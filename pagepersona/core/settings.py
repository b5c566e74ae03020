from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field


DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Deployment tunables for the transformation service."""

    app_env: str = "development"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    cache_ttl_seconds: int = 3600
    cache_max_entries: int = 5000
    job_ttl_seconds: int = 3600
    lock_ttl_seconds: int = 300
    max_concurrent_jobs: int = 4
    scrape_timeout_seconds: float = 15.0
    clean_timeout_seconds: float = 5.0
    transform_timeout_seconds: float = 60.0
    max_content_length: int = 8000
    clean_max_chars: int = 45000
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_api_base: str = "https://api.openai.com/v1"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.job_ttl_seconds < self.lock_ttl_seconds:
            raise ValueError(
                f"job_ttl_seconds ({self.job_ttl_seconds}) must not be shorter than "
                f"lock_ttl_seconds ({self.lock_ttl_seconds})"
            )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
        if not origins:
            origins = list(DEFAULT_CORS_ORIGINS)

        return cls(
            app_env=os.getenv("APP_ENV") or "development",
            cors_origins=origins,
            cache_ttl_seconds=_int_env("CACHE_TTL_SECONDS", 3600),
            cache_max_entries=_int_env("CACHE_MAX_ENTRIES", 5000),
            job_ttl_seconds=_int_env("JOB_TTL_SECONDS", 3600),
            lock_ttl_seconds=_int_env("JOB_LOCK_TTL_SECONDS", 300),
            max_concurrent_jobs=max(1, _int_env("MAX_CONCURRENT_JOBS", 4)),
            scrape_timeout_seconds=_float_env("SCRAPE_TIMEOUT_SECONDS", 15.0),
            clean_timeout_seconds=_float_env("CLEAN_TIMEOUT_SECONDS", 5.0),
            transform_timeout_seconds=_float_env("TRANSFORM_TIMEOUT_SECONDS", 60.0),
            max_content_length=_int_env("MAX_CONTENT_LENGTH", 8000),
            clean_max_chars=_int_env("CLEAN_MAX_CHARS", 45000),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o",
            openai_api_base=os.getenv("OPENAI_API_BASE") or "https://api.openai.com/v1",
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

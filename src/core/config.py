"""Central runtime configuration for the rate limiter service."""

from __future__ import annotations

from functools import lru_cache
import math

from pydantic_settings import BaseSettings, SettingsConfigDict


RATE_LIMIT_BACKENDS = {"redis", "memory"}
RATE_LIMIT_FAILURE_MODES = {"error", "open", "closed"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 0.5
    redis_connect_timeout_seconds: float = 2.0
    env: str = "development"
    log_level: str = "INFO"
    port: int = 8080
    app_name: str = "rate_limiter"
    app_version: str = "0.1.0"
    metrics_enabled: bool = True
    rate_limit_capacity: int = 5
    rate_limit_refill_rate: float = 1.0
    rate_limit_key_prefix: str = "rate_limiter"
    rate_limit_backend: str = "redis"
    rate_limit_failure_mode: str = "error"
    rate_limit_anonymous_identity: str = "anonymous"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _validate(settings: Settings) -> Settings:
    is_production = settings.env.lower() in {"prod", "production"}
    backend = settings.rate_limit_backend.strip().lower()
    if is_production:
        if not settings.redis_url.strip():
            raise ValueError("Missing required production secrets/config: REDIS_URL.")
        if backend != "redis":
            raise ValueError("RATE_LIMIT_BACKEND must be redis in production.")
    if settings.rate_limit_capacity < 1:
        raise ValueError("RATE_LIMIT_CAPACITY must be at least 1.")
    if not math.isfinite(settings.rate_limit_refill_rate) or settings.rate_limit_refill_rate <= 0:
        raise ValueError("RATE_LIMIT_REFILL_RATE must be positive.")
    if not settings.rate_limit_key_prefix.strip():
        raise ValueError("RATE_LIMIT_KEY_PREFIX must not be empty.")
    if backend not in RATE_LIMIT_BACKENDS:
        raise ValueError("RATE_LIMIT_BACKEND must be one of: memory, redis.")
    if settings.rate_limit_failure_mode.strip().lower() not in RATE_LIMIT_FAILURE_MODES:
        raise ValueError("RATE_LIMIT_FAILURE_MODE must be one of: closed, error, open.")
    if not settings.rate_limit_anonymous_identity.strip():
        raise ValueError("RATE_LIMIT_ANONYMOUS_IDENTITY must not be empty.")
    if settings.redis_socket_timeout_seconds <= 0:
        raise ValueError("REDIS_SOCKET_TIMEOUT_SECONDS must be positive.")
    if settings.redis_connect_timeout_seconds <= 0:
        raise ValueError("REDIS_CONNECT_TIMEOUT_SECONDS must be positive.")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return validated settings as a cached singleton."""

    return _validate(Settings())

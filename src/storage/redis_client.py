"""Redis client factory and health checks."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

from redis import Redis

from src.core.config import Settings, get_settings


def build_client(settings: Settings) -> Redis:
    """Open a new client; socket timeout bounds every limiter round trip."""

    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_connect_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_client() -> Redis:
    return build_client(get_settings())


def close_client() -> None:
    if get_client.cache_info().currsize == 0:
        return
    get_client().close()
    get_client.cache_clear()


def test_connection() -> Tuple[bool, Optional[str]]:
    try:
        get_client().ping()
        return True, None
    except Exception as exc:  # pragma: no cover
        return False, str(exc)

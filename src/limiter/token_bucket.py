"""Token bucket admission control over a shared bucket store."""

from __future__ import annotations

from functools import lru_cache
import math
import time
from typing import Callable

from redis.exceptions import RedisError

from src.core.config import get_settings
from src.core.logger import get_logger
from src.limiter.bucket import bucket_ttl_seconds
from src.limiter.store import BucketStore, InMemoryBucketStore, RedisBucketStore
from src.storage.redis_client import get_client


DEFAULT_KEY_PREFIX = "rate_limiter"
REQUEST_COST = 1

Clock = Callable[[], int]

logger = get_logger("ratelimiter.limiter")


class LimiterConfigError(ValueError):
    pass


def wall_clock_us() -> int:
    return time.time_ns() // 1_000


class TokenBucketLimiter:
    """Grant or deny one request per call for an identity.

    Holds no bucket state of its own: every decision is a single atomic
    ``consume`` against the store, so any number of threads, processes or hosts
    can share one limiter configuration without client-side locking.
    """

    def __init__(
        self,
        store: BucketStore,
        *,
        capacity: int,
        rate: float,
        clock: Clock = wall_clock_us,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise LimiterConfigError("capacity must be an integer of at least 1")
        if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise LimiterConfigError("rate must be a positive finite number")
        if not key_prefix:
            raise LimiterConfigError("key_prefix must not be empty")

        self._store = store
        self._capacity = capacity
        self._rate = float(rate)
        self._clock = clock
        self._key_prefix = key_prefix
        self._ttl_seconds = bucket_ttl_seconds(capacity=capacity, rate=self._rate)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def bucket_key(self, identity: str) -> str:
        return f"{self._key_prefix}:{identity}"

    def allow(self, identity: str) -> bool:
        """Consume one token for ``identity``; store failures propagate as raised."""

        if not identity:
            raise ValueError("identity must not be empty")

        key = self.bucket_key(identity)
        try:
            admitted = self._store.consume(
                key,
                capacity=self._capacity,
                rate=self._rate,
                now_us=self._clock(),
                requested=REQUEST_COST,
                ttl_seconds=self._ttl_seconds,
            )
        except RedisError as exc:
            logger.error("rate_limit_store_error", key=key, error=str(exc), error_type=type(exc).__name__)
            raise

        if not admitted:
            logger.info("rate_limit_denied", key=key, capacity=self._capacity, rate=self._rate)
        return admitted

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"capacity={self._capacity}, "
            f"rate={self._rate}, "
            f"key_prefix={self._key_prefix!r})"
        )


@lru_cache(maxsize=1)
def get_token_bucket_limiter() -> TokenBucketLimiter:
    settings = get_settings()

    store: BucketStore
    if settings.rate_limit_backend.strip().lower() == "memory":
        store = InMemoryBucketStore()
    else:
        store = RedisBucketStore(get_client())

    return TokenBucketLimiter(
        store,
        capacity=settings.rate_limit_capacity,
        rate=settings.rate_limit_refill_rate,
        key_prefix=settings.rate_limit_key_prefix,
    )


def reset_token_bucket_limiter() -> None:
    get_token_bucket_limiter.cache_clear()

"""Shared bucket state: one record per identity, mutated atomically."""

from __future__ import annotations

from threading import Lock
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis import Redis

from src.limiter.bucket import BucketState, refill_and_consume


# KEYS[1] bucket hash
# ARGV capacity, rate (tokens/s), now (unix microseconds), requested, ttl (s)
TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local requested = tonumber(ARGV[4])
local ttl = tonumber(ARGV[5])

local bucket = redis.call("HMGET", key, "tokens", "last_refilled")
local tokens = tonumber(bucket[1])
local last_refilled = tonumber(bucket[2])

if tokens == nil or last_refilled == nil then
  tokens = capacity
  last_refilled = now
end

local elapsed = math.max(0, now - last_refilled) / 1000000
tokens = math.min(capacity, tokens + elapsed * rate)

if tokens < requested then
  return 0
end

redis.call("HSET", key, "tokens", tokens - requested, "last_refilled", math.max(now, last_refilled))
redis.call("EXPIRE", key, ttl)
return 1
"""


class BucketStore(Protocol):
    def consume(
        self,
        key: str,
        *,
        capacity: int,
        rate: float,
        now_us: int,
        requested: int,
        ttl_seconds: int,
    ) -> bool:
        """Refill, debit and persist the bucket at ``key`` as one atomic step."""


class RedisBucketStore:
    """Bucket records as Redis hashes, updated by a single server-side script."""

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client

    def consume(
        self,
        key: str,
        *,
        capacity: int,
        rate: float,
        now_us: int,
        requested: int,
        ttl_seconds: int,
    ) -> bool:
        result = self._redis.eval(
            TOKEN_BUCKET_SCRIPT,
            1,
            key,
            capacity,
            rate,
            now_us,
            requested,
            ttl_seconds,
        )
        return int(result) == 1


class InMemoryBucketStore:
    """Process-local bucket records; same-key calls are serialized by a lock."""

    def __init__(self, *, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._monotonic = monotonic
        self._lock = Lock()
        self._store: Dict[str, Tuple[BucketState, float]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Optional[BucketState]:
        with self._lock:
            return self._live_state(key)

    def consume(
        self,
        key: str,
        *,
        capacity: int,
        rate: float,
        now_us: int,
        requested: int,
        ttl_seconds: int,
    ) -> bool:
        with self._lock:
            now = self._monotonic()
            # Abandoned identities are reclaimed even if never seen again.
            expired_keys = [item for item, (_, expires_at) in self._store.items() if expires_at <= now]
            for expired in expired_keys:
                self._store.pop(expired, None)

            entry = self._store.get(key)
            outcome = refill_and_consume(
                entry[0] if entry is not None else None,
                capacity=capacity,
                rate=rate,
                now_us=now_us,
                requested=requested,
            )
            if outcome.changed:
                self._store[key] = (outcome.state, now + ttl_seconds)
        return outcome.admitted

    def _live_state(self, key: str) -> Optional[BucketState]:
        entry = self._store.get(key)
        if entry is None:
            return None
        state, expires_at = entry
        if self._monotonic() >= expires_at:
            self._store.pop(key, None)
            return None
        return state

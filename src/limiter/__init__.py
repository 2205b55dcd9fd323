"""Distributed token bucket rate limiting."""

from src.limiter.bucket import BucketState, ConsumeOutcome, bucket_ttl_seconds, refill_and_consume
from src.limiter.store import BucketStore, InMemoryBucketStore, RedisBucketStore
from src.limiter.token_bucket import (
    LimiterConfigError,
    TokenBucketLimiter,
    get_token_bucket_limiter,
    reset_token_bucket_limiter,
)

__all__ = [
    "BucketState",
    "BucketStore",
    "ConsumeOutcome",
    "InMemoryBucketStore",
    "LimiterConfigError",
    "RedisBucketStore",
    "TokenBucketLimiter",
    "bucket_ttl_seconds",
    "get_token_bucket_limiter",
    "refill_and_consume",
    "reset_token_bucket_limiter",
]

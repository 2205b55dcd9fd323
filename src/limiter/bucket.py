"""Token bucket refill and consume rule.

The same rule is executed server-side by the Redis store (see
``src.limiter.store.TOKEN_BUCKET_SCRIPT``); this module is the Python form used
by the in-memory store and by anything that needs to reason about bucket state.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Optional


MICROSECONDS_PER_SECOND = 1_000_000


@dataclass(frozen=True)
class BucketState:
    tokens: float
    last_refilled_us: int


@dataclass(frozen=True)
class ConsumeOutcome:
    admitted: bool
    state: BucketState
    changed: bool


def bucket_ttl_seconds(*, capacity: int, rate: float) -> int:
    """Idle lifetime of a record: twice the time to refill from empty to full."""

    return max(1, math.ceil(2 * capacity / rate))


def refill(state: BucketState, *, capacity: int, rate: float, now_us: int) -> float:
    # Clock skew between callers must never drain the bucket.
    elapsed_seconds = max(0, now_us - state.last_refilled_us) / MICROSECONDS_PER_SECOND
    return min(float(capacity), state.tokens + elapsed_seconds * rate)


def refill_and_consume(
    state: Optional[BucketState],
    *,
    capacity: int,
    rate: float,
    now_us: int,
    requested: int = 1,
) -> ConsumeOutcome:
    """Apply one admission decision to ``state``.

    A missing state is a full bucket observed for the first time. On denial the
    stored pair is returned unchanged: it already encodes the refilled value, so
    writing the refilled tokens without advancing ``last_refilled_us`` would
    credit the same elapsed time twice.
    """

    if state is None:
        state = BucketState(tokens=float(capacity), last_refilled_us=now_us)

    tokens = refill(state, capacity=capacity, rate=rate, now_us=now_us)
    if tokens < requested:
        return ConsumeOutcome(admitted=False, state=state, changed=False)

    return ConsumeOutcome(
        admitted=True,
        state=BucketState(
            tokens=tokens - requested,
            last_refilled_us=max(now_us, state.last_refilled_us),
        ),
        changed=True,
    )

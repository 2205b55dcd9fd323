import pytest

from src.limiter.bucket import BucketState, bucket_ttl_seconds, refill, refill_and_consume


NOW_US = 1_700_000_000_000_000


def test_missing_state_is_a_full_bucket() -> None:
    outcome = refill_and_consume(None, capacity=5, rate=1.0, now_us=NOW_US)

    assert outcome.admitted is True
    assert outcome.changed is True
    assert outcome.state == BucketState(tokens=4.0, last_refilled_us=NOW_US)


def test_refill_is_proportional_to_elapsed_time() -> None:
    state = BucketState(tokens=0.0, last_refilled_us=NOW_US)

    tokens = refill(state, capacity=10, rate=2.0, now_us=NOW_US + 1_500_000)

    assert tokens == pytest.approx(3.0)


def test_refill_saturates_at_capacity() -> None:
    state = BucketState(tokens=1.0, last_refilled_us=NOW_US)

    outcome = refill_and_consume(state, capacity=3, rate=1.0, now_us=NOW_US + 3_600_000_000)

    assert outcome.admitted is True
    assert outcome.state.tokens == pytest.approx(2.0)


def test_denial_leaves_stored_state_untouched() -> None:
    state = BucketState(tokens=0.25, last_refilled_us=NOW_US)

    outcome = refill_and_consume(state, capacity=5, rate=1.0, now_us=NOW_US + 500_000)

    assert outcome.admitted is False
    assert outcome.changed is False
    assert outcome.state is state


def test_clock_behind_last_refill_does_not_drain_tokens() -> None:
    state = BucketState(tokens=0.5, last_refilled_us=NOW_US)

    tokens = refill(state, capacity=5, rate=1.0, now_us=NOW_US - 10_000_000)

    assert tokens == pytest.approx(0.5)


def test_admit_never_moves_last_refill_backwards() -> None:
    state = BucketState(tokens=2.0, last_refilled_us=NOW_US)

    outcome = refill_and_consume(state, capacity=5, rate=1.0, now_us=NOW_US - 3_000_000)

    assert outcome.admitted is True
    assert outcome.state == BucketState(tokens=1.0, last_refilled_us=NOW_US)


@pytest.mark.parametrize(
    ("capacity", "rate", "expected"),
    [
        (5, 1.0, 10),
        (5, 3.0, 4),
        (100, 0.5, 400),
        (1, 1000.0, 1),
    ],
)
def test_ttl_is_twice_the_full_refill_time(capacity: int, rate: float, expected: int) -> None:
    assert bucket_ttl_seconds(capacity=capacity, rate=rate) == expected

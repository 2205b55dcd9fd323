from __future__ import annotations

from threading import Lock
from typing import Dict


START_US = 1_700_000_000_000_000


class ManualClock:
    """Microsecond clock that only moves when a test advances it."""

    def __init__(self, start_us: int = START_US) -> None:
        self.now_us = start_us

    def __call__(self) -> int:
        return self.now_us

    def advance(self, seconds: float) -> None:
        self.now_us += int(round(seconds * 1_000_000))

    def monotonic(self) -> float:
        return self.now_us / 1_000_000


class FakeRedis:
    """Hash commands plus an in-process rendition of the token bucket script."""

    def __init__(self) -> None:
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._ttls: Dict[str, int] = {}
        self._lock = Lock()
        self.eval_calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def ping(self):
        return True

    def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    def ttl(self, key: str) -> int:
        if key not in self._hashes:
            return -2
        return self._ttls.get(key, -1)

    def expire_now(self, key: str) -> None:
        self._hashes.pop(key, None)
        self._ttls.pop(key, None)

    def eval(self, script: str, numkeys: int, *keys_and_args):
        if self.fail_with is not None:
            raise self.fail_with
        if numkeys != 1:
            raise ValueError("Expected one key")

        key, capacity, rate, now, requested, ttl = keys_and_args
        with self._lock:
            self.eval_calls.append((script, numkeys, *keys_and_args))
            bucket = self._hashes.get(key)
            if bucket is None:
                tokens = float(capacity)
                last_refilled = int(now)
            else:
                tokens = float(bucket["tokens"])
                last_refilled = int(bucket["last_refilled"])

            elapsed = max(0, now - last_refilled) / 1_000_000
            tokens = min(float(capacity), tokens + elapsed * float(rate))
            if tokens < requested:
                return 0

            self._hashes[key] = {
                "tokens": repr(tokens - requested),
                "last_refilled": str(max(now, last_refilled)),
            }
            self._ttls[key] = int(ttl)
            return 1

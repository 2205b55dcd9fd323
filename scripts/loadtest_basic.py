"""Fire concurrent requests at the rate-limited endpoint and tally the decisions.

Example::

    python scripts/loadtest_basic.py --url http://localhost:8080/api/data --user-id alice
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
import time

import httpx


@dataclass(frozen=True)
class Sample:
    status_code: int
    seconds: float


def _nearest_rank(ordered: list[float], fraction: float) -> float:
    if not ordered:
        return 0.0
    return ordered[int((len(ordered) - 1) * fraction)]


def summarize(statuses: list[int], durations: list[float], *, elapsed: float) -> dict[str, float]:
    total = len(statuses)
    admitted = statuses.count(200)
    throttled = statuses.count(429)
    ordered = sorted(durations)

    return {
        "total_requests": float(total),
        "admitted": float(admitted),
        "throttled": float(throttled),
        "errors": float(sum(1 for status in statuses if status >= 500)),
        "admit_rate": 100 * admitted / total if total else 0.0,
        "rps": total / elapsed if elapsed > 0 else 0.0,
        "latency_avg_ms": 1000 * sum(ordered) / len(ordered) if ordered else 0.0,
        "latency_p95_ms": 1000 * _nearest_rank(ordered, 0.95),
        "latency_p99_ms": 1000 * _nearest_rank(ordered, 0.99),
        "elapsed_seconds": elapsed,
    }


async def _fire(client: httpx.AsyncClient, gate: asyncio.Semaphore, url: str, params: dict[str, str]) -> Sample:
    async with gate:
        started_at = time.perf_counter()
        response = await client.get(url, params=params)
        return Sample(status_code=response.status_code, seconds=time.perf_counter() - started_at)


async def run_load_test(
    *,
    url: str,
    user_id: str,
    total_requests: int,
    concurrency: int,
    timeout_seconds: float,
    verify_tls: bool,
) -> dict[str, float]:
    gate = asyncio.Semaphore(concurrency)
    params = {"user_id": user_id} if user_id else {}
    started_at = time.perf_counter()

    async with httpx.AsyncClient(timeout=timeout_seconds, verify=verify_tls) as client:
        samples = await asyncio.gather(*(_fire(client, gate, url, params) for _ in range(total_requests)))

    return summarize(
        [sample.status_code for sample in samples],
        [sample.seconds for sample in samples],
        elapsed=time.perf_counter() - started_at,
    )


def _render(result: dict[str, float]) -> str:
    counts = ("total_requests", "admitted", "throttled", "errors")
    lines = [f"{name}={int(result[name])}" for name in counts]
    lines.append(f"admit_rate={result['admit_rate']:.2f}%")
    lines.append(f"throughput_rps={result['rps']:.2f}")
    for name in ("latency_avg_ms", "latency_p95_ms", "latency_p99_ms", "elapsed_seconds"):
        lines.append(f"{name}={result[name]:.2f}")
    return "\n".join(lines)


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError("must be positive")
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description="Hammer the rate-limited endpoint and count decisions.")
    parser.add_argument("--url", default="http://localhost:8080/api/data")
    parser.add_argument("--user-id", default="loadtest", help="Identity whose bucket is drained.")
    parser.add_argument("--requests", type=_positive_int, default=200)
    parser.add_argument("--concurrency", type=_positive_int, default=20)
    parser.add_argument("--timeout", type=float, default=5.0)
    parser.add_argument("--insecure", action="store_true", help="Skip TLS certificate validation.")
    args = parser.parse_args()

    result = asyncio.run(
        run_load_test(
            url=args.url,
            user_id=args.user_id,
            total_requests=args.requests,
            concurrency=args.concurrency,
            timeout_seconds=args.timeout,
            verify_tls=not args.insecure,
        )
    )
    print(_render(result))


if __name__ == "__main__":
    main()

"""FastAPI application entrypoint for the rate limiter service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from redis.exceptions import RedisError

from src.core.config import get_settings
from src.core.logger import bind_identity_context, bind_request_context, clear_request_context, get_logger
from src.core.metrics import (
    record_http_request,
    record_rate_limit_decision,
    record_rate_limit_store_error,
    render_prometheus_metrics,
)
from src.limiter.token_bucket import get_token_bucket_limiter
from src.storage.redis_client import close_client
from src.storage.redis_client import test_connection as test_redis_connection


settings = get_settings()
logger = get_logger("ratelimiter.api")


TOO_MANY_REQUESTS_MESSAGE = "Too Many Requests, please try again later."
PROTECTED_PAYLOAD = "protected resource payload"


def _uses_redis_backend() -> bool:
    return settings.rate_limit_backend.strip().lower() == "redis"


def _resolve_identity(user_id: str | None) -> str:
    normalized = (user_id or "").strip()
    return normalized or settings.rate_limit_anonymous_identity


def check_store_connection() -> None:
    """Refuse to serve traffic when the shared bucket store is unreachable."""

    if not _uses_redis_backend():
        return
    redis_ok, redis_error = test_redis_connection()
    if not redis_ok:
        logger.error("redis_unreachable", redis_url=settings.redis_url, error=redis_error)
        raise RuntimeError(f"failed to connect to Redis at {settings.redis_url}: {redis_error}")


@asynccontextmanager
async def lifespan(_: FastAPI):
    check_store_connection()
    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        metrics_enabled=settings.metrics_enabled,
        rate_limit_backend=settings.rate_limit_backend,
        rate_limit_capacity=settings.rate_limit_capacity,
        rate_limit_refill_rate=settings.rate_limit_refill_rate,
        rate_limit_failure_mode=settings.rate_limit_failure_mode,
    )
    yield
    if _uses_redis_backend():
        close_client()
    logger.info("application_shutdown")


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    bind_request_context(request_id=request_id)

    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        duration = perf_counter() - started_at
        if settings.metrics_enabled:
            record_http_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_seconds=duration,
            )
        clear_request_context()

    response.headers["x-request-id"] = request_id
    return response


@app.get("/api/data")
def read_data(user_id: str | None = None) -> JSONResponse:
    identity = _resolve_identity(user_id)
    bind_identity_context(identity)
    limiter = get_token_bucket_limiter()
    headers = {"x-rate-limit-limit": str(limiter.capacity)}

    try:
        admitted = limiter.allow(identity)
    except RedisError as exc:
        failure_mode = settings.rate_limit_failure_mode.strip().lower()
        record_rate_limit_store_error(failure_mode=failure_mode)
        if failure_mode == "open":
            admitted = True
        elif failure_mode == "closed":
            admitted = False
        else:
            return JSONResponse(
                status_code=500,
                content={"detail": f"Internal Server Error: {type(exc).__name__}"},
            )
    else:
        record_rate_limit_decision(admitted=admitted)

    if not admitted:
        return JSONResponse(
            status_code=429,
            content={"error": TOO_MANY_REQUESTS_MESSAGE},
            headers=headers,
        )
    return JSONResponse(
        status_code=200,
        content={"status": "success", "data": PROTECTED_PAYLOAD},
        headers=headers,
    )


@app.get("/health")
def health() -> JSONResponse:
    if _uses_redis_backend():
        redis_ok, redis_error = test_redis_connection()
    else:
        redis_ok, redis_error = True, None

    status = "ok" if redis_ok else "degraded"
    payload = {
        "status": status,
        "env": settings.env,
        "services": {
            "redis": {"ok": redis_ok, "error": redis_error},
        },
    }

    return JSONResponse(content=payload, status_code=200 if redis_ok else 503)


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
    }


@app.get("/metrics")
def metrics() -> PlainTextResponse:
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)

    payload = render_prometheus_metrics(
        app_name=settings.app_name,
        app_version=settings.app_version,
        env=settings.env,
    )
    return PlainTextResponse(
        payload,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

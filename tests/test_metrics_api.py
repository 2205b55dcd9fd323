from fastapi.testclient import TestClient

import src.api.main as api_main
from src.core.metrics import reset_metrics_for_tests
from src.limiter.store import InMemoryBucketStore
from src.limiter.token_bucket import TokenBucketLimiter


def test_metrics_endpoint_returns_prometheus_payload(monkeypatch) -> None:
    reset_metrics_for_tests()
    monkeypatch.setattr(api_main.settings, "metrics_enabled", True)
    limiter = TokenBucketLimiter(InMemoryBucketStore(), capacity=1, rate=1.0, clock=lambda: 1_000_000)
    monkeypatch.setattr(api_main, "get_token_bucket_limiter", lambda: limiter)

    client = TestClient(api_main.app)
    assert client.get("/version").status_code == 200
    assert client.get("/api/data", params={"user_id": "metrics"}).status_code == 200
    assert client.get("/api/data", params={"user_id": "metrics"}).status_code == 429

    metrics_response = client.get("/metrics")
    assert metrics_response.status_code == 200
    assert metrics_response.headers["content-type"].startswith("text/plain")
    body = metrics_response.text
    assert "ratelimiter_build_info" in body
    assert 'ratelimiter_http_requests_total{method="GET",path="/version",status="200"}' in body
    assert 'ratelimiter_http_requests_total{method="GET",path="/api/data",status="429"} 1' in body
    assert "ratelimiter_http_request_duration_seconds_sum" in body
    assert 'ratelimiter_rate_limit_decisions_total{outcome="admitted"} 1' in body
    assert 'ratelimiter_rate_limit_decisions_total{outcome="denied"} 1' in body


def test_metrics_endpoint_disabled_returns_404(monkeypatch) -> None:
    monkeypatch.setattr(api_main.settings, "metrics_enabled", False)
    client = TestClient(api_main.app)
    response = client.get("/metrics")
    assert response.status_code == 404

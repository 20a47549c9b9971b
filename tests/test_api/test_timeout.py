"""Tests for request timeout middleware."""

import asyncio

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware.timeout import TimeoutMiddleware


def _create_test_app(timeout: float = 1.0, **kwargs) -> FastAPI:
    app = FastAPI()
    app.add_middleware(TimeoutMiddleware, timeout_seconds=timeout, **kwargs)

    @app.get("/breaches")
    async def fast():
        return {"status": "ok"}

    @app.post("/breaches/evaluate")
    async def slow():
        await asyncio.sleep(10)
        return {"status": "ok"}

    @app.get("/health")
    async def health():
        await asyncio.sleep(0.3)
        return {"status": "healthy"}

    return app


class TestTimeoutMiddleware:
    def test_fast_request_succeeds(self):
        client = TestClient(_create_test_app(timeout=5.0))
        response = client.get("/breaches")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_slow_request_returns_504(self):
        client = TestClient(_create_test_app(timeout=0.1))
        response = client.post("/breaches/evaluate")
        assert response.status_code == 504
        data = response.json()
        assert "timed out" in data["detail"]
        assert data["error_type"] == "timeout"
        assert data["timeout_seconds"] == 0.1

    def test_health_never_times_out(self):
        client = TestClient(_create_test_app(timeout=0.1))
        response = client.get("/health")
        assert response.status_code == 200

    def test_custom_excluded_prefixes(self):
        client = TestClient(
            _create_test_app(timeout=0.1, excluded_prefixes=("/breaches/evaluate",))
        )
        assert client.get("/health").status_code == 504

"""Request id, error envelope and rate limiting middleware."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from riyaz.rate_limiter import InMemoryBackend, RateLimiter

pytestmark = pytest.mark.asyncio


class TestRequestId:
    async def test_generated_when_absent(self, client: AsyncClient):
        response = await client.get("/health")
        assert len(response.headers["X-Request-Id"]) == 36

    async def test_propagated_when_present(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "req-abc-123"})
        assert response.headers["X-Request-Id"] == "req-abc-123"


class TestErrorEnvelope:
    async def test_unknown_path(self, client: AsyncClient):
        response = await client.get("/api/v1/nope")
        assert response.status_code == 404
        assert response.json() == {"ok": False, "detail": "Not Found"}

    async def test_bad_scheduler_body(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/scheduler/leagues/finalize",
            json={"today": "not-a-date"},
            headers={"X-Cron-Secret": "test-cron-secret"},
        )
        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["detail"] == "Validation error"


@pytest_asyncio.fixture
async def limited_client(database) -> AsyncGenerator[AsyncClient, None]:
    from riyaz.main import create_app

    app = create_app()
    app.state.rate_limiter = RateLimiter(InMemoryBackend(), requests_per_window=3, window_seconds=60)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestRateLimit:
    async def test_blocks_after_budget(self, limited_client: AsyncClient):
        statuses = [(await limited_client.get("/api/v1/dashboard")).status_code for _ in range(4)]
        assert statuses[:3] == [401, 401, 401]
        assert statuses[3] == 429

        blocked = await limited_client.get("/api/v1/dashboard")
        assert blocked.json()["code"] == "RATE_LIMITED"
        assert blocked.headers["Retry-After"] == "60"

    async def test_health_endpoints_are_exempt(self, limited_client: AsyncClient):
        for _ in range(5):
            response = await limited_client.get("/health")
            assert response.status_code == 200

    async def test_remaining_header(self, limited_client: AsyncClient):
        response = await limited_client.get("/api/v1/dashboard")
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"

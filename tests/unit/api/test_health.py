"""Health endpoint tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from agrotrace.main import app


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_needs_no_tenant(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert data["correlation_id"] == r.headers["X-Correlation-ID"]

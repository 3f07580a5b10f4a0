"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health reports server, database, and presence without Redis."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["redis"] == "disabled"
    assert data["onlineUsers"] == 0
    assert "version" in data


@pytest.mark.asyncio
async def test_health_is_open(unauthenticated_client):
    resp = await unauthenticated_client.get("/api/v1/health")
    assert resp.status_code == 200

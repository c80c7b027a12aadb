"""Health endpoint tests."""

from httpx import AsyncClient

from oos_engine import __version__


async def test_health_check(client: AsyncClient) -> None:
    """Health check returns ok status."""
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


async def test_health_check_ready(client: AsyncClient) -> None:
    """Readiness check reaches the database."""
    response = await client.get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_root_endpoint(client: AsyncClient) -> None:
    """Root endpoint returns service info."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "OOS Rule Engine API"
    assert "version" in data

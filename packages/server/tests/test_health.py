"""
Health check endpoint tests.
"""

from unittest.mock import AsyncMock, patch

import pytest
import structlog
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.core.logging import configure_logging


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client: AsyncClient):
    """Ready endpoint should return status ready."""
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


@pytest.mark.asyncio
async def test_ready_check_database_down(client: AsyncClient):
    with patch("app.main.ping_db", AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))):
        response = await client.get("/ready")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/orgs/{orgSlug}/assessments" in data["endpoints"]


@pytest.mark.asyncio
async def test_dependency_health(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["database"] == "up"
    assert data["services"]["stripe"] in {"configured", "not_configured"}


@pytest.mark.asyncio
async def test_dependency_health_database_down(client: AsyncClient):
    with patch("app.api.system.ping_db", AsyncMock(side_effect=OSError("connection refused"))):
        response = await client.get("/api/health")
    assert response.status_code == 503
    assert response.json()["services"]["database"] == "down"


@pytest.mark.parametrize("level,fmt", [("debug", "console"), ("warning", "json"), ("bogus", "json")])
def test_configure_logging(level, fmt):
    configure_logging(level=level, fmt=fmt)
    structlog.get_logger().info("logging.configured", level=level)
    configure_logging()

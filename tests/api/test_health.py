"""Tests for the readiness check."""
from unittest.mock import patch

from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession


async def test__health_check__ok(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "database": "ok",
        "identity_provider": "local",
    }


async def test__health_check__does_not_require_auth(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 200


async def test__health_check__database_down_is_503(
    client: AsyncClient, db_session: AsyncSession,
) -> None:
    error = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with patch.object(db_session, "execute", side_effect=error):
        response = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"
    assert response.json()["database"] == "unavailable"

"""Tests for the health check endpoint."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_all_services_up(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"] == {"postgres": "up", "redis": "up"}
        assert data["version"] == "0.1.0"

    @pytest.mark.asyncio
    async def test_redis_down_is_degraded(self, client: AsyncClient, fake_redis: Any) -> None:
        fake_redis.fail_on.add("ping")

        data = (await client.get("/api/v1/health")).json()

        assert data["status"] == "degraded"
        assert data["services"]["redis"] == "down"

    @pytest.mark.asyncio
    async def test_everything_down_is_unhealthy(
        self, client: AsyncClient, fake_redis: Any, mock_db_session: AsyncMock
    ) -> None:
        fake_redis.fail_on.add("ping")
        mock_db_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))

        data = (await client.get("/api/v1/health")).json()

        assert data["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_memory_store_disables_postgres_check(self, client: AsyncClient, test_app: Any) -> None:
        test_app.state.db_session_factory = None

        data = (await client.get("/api/v1/health")).json()

        assert data["services"]["postgres"] == "disabled"
        assert data["status"] == "healthy"

"""Tests for request middleware (src/api/middleware/security.py)."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from src.api.version import API_VERSION


class TestRequestIDMiddleware:
    """Test the X-Request-ID middleware."""

    @pytest.mark.asyncio
    async def test_response_has_request_id(self, client: AsyncClient) -> None:
        """Every response should include an X-Request-ID header."""
        response = await client.get("/api/v1/health")
        assert "x-request-id" in response.headers

    @pytest.mark.asyncio
    async def test_client_provided_request_id_preserved(self, client: AsyncClient) -> None:
        """If client sends X-Request-ID, it should be echoed back."""
        response = await client.get(
            "/api/v1/health",
            headers={"X-Request-ID": "my-custom-id-123"},
        )
        assert response.headers.get("x-request-id") == "my-custom-id-123"

    @pytest.mark.asyncio
    async def test_generated_request_id_is_uuid(self, client: AsyncClient) -> None:
        """Auto-generated request IDs should look like UUIDs."""
        response = await client.get("/api/v1/health")
        request_id = response.headers.get("x-request-id", "")
        # UUID4 format: 8-4-4-4-12 hex chars
        parts = request_id.split("-")
        assert len(parts) == 5

    @pytest.mark.asyncio
    async def test_api_version_header(self, client: AsyncClient) -> None:
        """X-API-Version header should match the canonical API_VERSION constant."""
        response = await client.get("/api/v1/tasks")
        assert response.headers.get("x-api-version") == API_VERSION

"""Shared pytest fixtures for core tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from seedgraph.main import app


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Iterator

import pytest
from httpx import ASGITransport, AsyncClient

from transit_rt.config import get_settings
from transit_rt.main import app
from transit_rt.services.gtfs_rt.pipeline import reset_ingestor
from transit_rt.services.merge.engine import reset_store


@pytest.fixture(autouse=True)
def fresh_state() -> Iterator[None]:
    """Give every test empty entity tables and freshly read settings."""
    get_settings.cache_clear()
    reset_store()
    reset_ingestor()
    yield
    reset_ingestor()
    reset_store()
    get_settings.cache_clear()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

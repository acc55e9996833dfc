"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Iterator
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from delijn_rt.config import Settings
from delijn_rt.main import app


@pytest.fixture
def settings() -> Settings:
    """Settings with an API key configured."""
    return Settings(DL_GTFSRT="test-key", gtfs_rt_max_retries=1)


@pytest.fixture
def mock_settings(settings: Settings) -> Iterator[Settings]:
    """Patch the settings seen by the feed router and health endpoint."""
    with (
        patch("delijn_rt.routers.feed.get_settings", return_value=settings),
        patch("delijn_rt.main.get_settings", return_value=settings),
    ):
        yield settings


@pytest.fixture
def mock_fetch(mock_settings: Settings) -> Iterator[AsyncMock]:  # noqa: ARG001
    """Mock the upstream fetch; set ``return_value`` to (bytes, hash)."""
    with patch("delijn_rt.routers.feed.GtfsRtFetcher") as fetcher_cls:
        fetch = AsyncMock()
        fetcher_cls.return_value.fetch = fetch
        yield fetch


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

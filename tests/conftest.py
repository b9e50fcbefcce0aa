"""Shared pytest fixtures for key store, endpoint and HTTP tests."""

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from short.config import Settings
from short.dependencies import ServiceManager
from short.main import app


@pytest.fixture
def settings() -> Settings:
    """Settings with limits high enough not to interfere with functional tests."""
    return Settings(
        LOG_LEVEL="WARNING",
        CREATE_RATE_LIMIT=10_000.0,
        CREATE_RATE_BURST=10_000,
        LOOKUP_RATE_LIMIT=10_000.0,
        LOOKUP_RATE_BURST=10_000,
    )


@pytest.fixture
def manager(settings: Settings) -> Generator[ServiceManager, None, None]:
    service_manager = ServiceManager(settings)
    service_manager.initialize()
    original = app.state.service_manager
    app.state.service_manager = service_manager
    yield service_manager
    app.state.service_manager = original
    service_manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sync_client(manager: ServiceManager) -> TestClient:
    return TestClient(app)

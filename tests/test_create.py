"""Create endpoint behavior tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from short.config import Settings
from short.dependencies import ServiceManager
from short.main import app


@pytest.mark.asyncio
async def test_create_worked_example(client: AsyncClient) -> None:
    response = await client.post("/api", json={"v": "12345"})
    assert response.status_code == 200
    assert response.json() == {"k": "gnzLDu"}


@pytest.mark.asyncio
async def test_create_is_idempotent(client: AsyncClient) -> None:
    first = await client.post("/api", json={"v": "https://www.python.org"})
    second = await client.post("/api", json={"v": "https://www.python.org"})
    assert first.json()["k"] == second.json()["k"]


@pytest.mark.asyncio
async def test_create_multiple_values(client: AsyncClient) -> None:
    values = [
        "https://www.google.com",
        "https://www.github.com",
        "https://www.python.org",
    ]
    keys = set()
    for value in values:
        response = await client.post("/api", json={"v": value})
        assert response.status_code == 200
        keys.add(response.json()["k"])
    assert len(keys) == 3


@pytest.mark.asyncio
async def test_create_value_too_large(client: AsyncClient) -> None:
    response = await client.post("/api", json={"v": "x" * 2084})
    assert response.status_code == 400
    assert response.json() == {"error": "result exceeds maximum size"}


@pytest.mark.asyncio
async def test_create_missing_value(client: AsyncClient) -> None:
    response = await client.post("/api", json={})
    assert response.status_code == 422
    assert response.json()["error"].startswith("invalid request: body.v")


@pytest.mark.asyncio
async def test_create_malformed_body(client: AsyncClient) -> None:
    response = await client.post("/api", content="not json", headers={"content-type": "application/json"})
    assert response.status_code == 422
    assert list(response.json()) == ["error"]


@pytest.mark.asyncio
async def test_create_rate_limited(manager: ServiceManager) -> None:
    # The manager fixture restores the application's manager afterwards.
    limited = ServiceManager(Settings(LOG_LEVEL="WARNING", CREATE_RATE_LIMIT=0.001, CREATE_RATE_BURST=1))
    app.state.service_manager = limited
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        first = await ac.post("/api", json={"v": "a"})
        second = await ac.post("/api", json={"v": "b"})
    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json() == {"error": "rate limit exceeded"}

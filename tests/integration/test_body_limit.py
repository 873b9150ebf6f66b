"""Regression tests for RequestBodyLimitMiddleware."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from docjoin.api.app import create_app
from docjoin.api.deps import init_store, reset_store
from docjoin.service.schema_store import SchemaStore
from docjoin.settings import Settings
from tests.conftest import SAMPLE_SCHEMA_YAML

_LIMIT = 64 * 1024


@pytest.fixture
def app():
    application = create_app(settings=Settings(_env_file=None, max_body_bytes=_LIMIT))
    init_store(SchemaStore())
    yield application
    reset_store()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestInvalidContentLength:
    """Non-integer Content-Length must not cause a 500."""

    async def test_non_integer_content_length(self, client: AsyncClient) -> None:
        response = await client.post(
            "/health",
            content=b"small body",
            headers={"content-length": "not-a-number"},
        )
        assert response.status_code != 500

    async def test_negative_content_length(self, client: AsyncClient) -> None:
        response = await client.post(
            "/health",
            content=b"small body",
            headers={"content-length": "-1"},
        )
        assert response.status_code != 500


class TestOverLimit:
    async def test_declared_length_over_limit(self, client: AsyncClient) -> None:
        response = await client.post("/validate", content=b"x" * (_LIMIT + 1))
        assert response.status_code == 413
        assert "too large" in response.json()["detail"]

    async def test_chunked_body_over_limit(self, client: AsyncClient) -> None:
        oversized = b"x" * (_LIMIT + 1)
        response = await client.post(
            "/registries",
            content=oversized,
            headers={"transfer-encoding": "chunked"},
        )
        assert response.status_code == 413
        assert "too large" in response.json()["detail"]


class TestUnderLimit:
    async def test_body_is_still_readable(self, client: AsyncClient) -> None:
        response = await client.post("/registries", json={"schema_yaml": SAMPLE_SCHEMA_YAML})
        assert response.status_code == 201

"""Tests for GET /api/health."""
from pathlib import Path

import pytest
from httpx import AsyncClient

from notegen.main import app
from notegen.services.completion import GeminiCompletionService, get_completion_service
from tests.conftest import make_docx


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["llm_provider"] == "fake"
    assert data["llm_configured"] is True
    assert data["knowledge_documents"] == 0
    assert "X-Process-Time" in resp.headers


@pytest.mark.asyncio
async def test_health_counts_knowledge_documents(client: AsyncClient, knowledge_dir: Path):
    make_docx(knowledge_dir / "civic.docx", ["Civic education"])
    make_docx(knowledge_dir / "maths.docx", ["Mathematics"])

    resp = await client.get("/api/health/")

    assert resp.json()["knowledge_documents"] == 2


@pytest.mark.asyncio
async def test_health_degraded_without_api_key(client: AsyncClient):
    app.dependency_overrides[get_completion_service] = lambda: GeminiCompletionService(api_key="")

    resp = await client.get("/api/health/")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["llm_provider"] == "gemini"
    assert data["llm_configured"] is False


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Lesson Note Generator API"
    assert data["endpoints"]["chat"] == "/api/chat"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_body(client: AsyncClient):
    resp = await client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not Found"}

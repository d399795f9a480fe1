"""
Tests de los endpoints de ingesta y de administracion del cache.
"""
from __future__ import annotations

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from content_sync.api.v1.dependencies.container_deps import get_ingestion_use_cases
from content_sync.core.config import Settings
from content_sync.core.container import Container, build_container
from content_sync.infrastructure.ingestion.upsert_engine import UpsertEngine
from content_sync.main import create_application
from content_sync.shared.exceptions.domain import StoreUnavailableError


INGEST_URL = "/api/v1/ingest"


async def _client_for(container: Container) -> AsyncClient:
    app = create_application(container=container)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(container: Container) -> AsyncGenerator[AsyncClient, None]:
    async with await _client_for(container) as client:
        yield client


@pytest.fixture
async def protected(test_settings: Settings, engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    settings = test_settings.model_copy(update={"INGEST_TOKEN": "secreto"})
    async with await _client_for(build_container(settings, engine=engine)) as client:
        yield client


class TestIngestEndpoint:
    @pytest.mark.asyncio
    async def test_ingest_returns_report(self, client: AsyncClient, sample_export: dict) -> None:
        response = await client.post(INGEST_URL, json=sample_export)

        assert response.status_code == 200
        report = response.json()
        assert report["status"] == "completed"
        assert report["summary"]["posts"]["inserted"] == 6
        assert report["summary"]["categories"]["inserted"] == 2
        assert report["summary"]["authors"]["inserted"] == 1
        assert report["errors"] == []

    @pytest.mark.asyncio
    async def test_repeated_ingest_is_idempotent(self, client: AsyncClient, sample_export: dict) -> None:
        await client.post(INGEST_URL, json=sample_export)

        report = (await client.post(INGEST_URL, json=sample_export)).json()

        assert report["summary"]["posts"]["unchanged"] == 6
        assert report["cache_invalidated"] is False

    @pytest.mark.asyncio
    async def test_bad_records_do_not_reject_batch(self, client: AsyncClient) -> None:
        response = await client.post(INGEST_URL, json={"posts": [{"slug": "sin-id"}, "texto"]})

        assert response.status_code == 200
        report = response.json()
        assert report["summary"]["posts"]["failed"] == 2
        assert {e["error"] for e in report["errors"]} == {"NormalizationError"}

    @pytest.mark.asyncio
    async def test_store_failure_returns_partial_report(
        self, client: AsyncClient, sample_export: dict, monkeypatch
    ) -> None:
        async def unavailable(self, kind, entities):
            raise StoreUnavailableError()

        monkeypatch.setattr(UpsertEngine, "upsert", unavailable)

        response = await client.post(INGEST_URL, json=sample_export)

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "STORE_UNAVAILABLE"
        assert body["details"]["report"]["status"] == "aborted"

    @pytest.mark.asyncio
    async def test_busy_kind_returns_conflict(
        self, client: AsyncClient, container: Container, sample_export: dict
    ) -> None:
        async with container.locks.lock("posts"):
            response = await client.post(INGEST_URL, json=sample_export)

        assert response.status_code == 409
        assert response.json()["error"] == "INGESTION_BUSY"


class TestIngestToken:
    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, protected: AsyncClient, sample_export: dict) -> None:
        response = await protected.post(INGEST_URL, json=sample_export)

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_valid_token_is_accepted(self, protected: AsyncClient, sample_export: dict) -> None:
        response = await protected.post(INGEST_URL, json=sample_export, headers={"X-Ingest-Token": "secreto"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_cache_clear_requires_token(self, protected: AsyncClient) -> None:
        assert (await protected.post("/api/v1/cache/clear")).status_code == 401

        response = await protected.post("/api/v1/cache/clear", headers={"X-Ingest-Token": "secreto"})
        assert response.json() == {"cleared": 0}


class TestCacheEndpoints:
    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/cache/stats")

        assert response.status_code == 200
        assert response.json()["enabled"] is True


class TestDependencyWiring:
    @pytest.mark.asyncio
    async def test_endpoint_resolves_use_cases_through_dependency(self, container: Container) -> None:
        received = []

        class _RecordingUseCases:
            async def ingest(self, raw):
                received.append(raw)
                return {"status": "completed", "summary": {}, "errors": [], "cache_invalidated": False}

        app = create_application(container=container)
        app.dependency_overrides[get_ingestion_use_cases] = lambda: _RecordingUseCases()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(INGEST_URL, json={"posts": []})

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert len(received) == 1

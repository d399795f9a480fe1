"""
Tests del endpoint GraphQL y del health check.
"""
from __future__ import annotations

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from content_sync.api.v1.dependencies.container_deps import get_query_service
from content_sync.core.container import Container
from content_sync.main import create_application
from content_sync.shared.exceptions.domain import StoreUnavailableError


GRAPHQL_URL = "/api/v1/graphql"

POSTS_QUERY = """
query Posts($first: Int, $after: String) {
  posts(first: $first, after: $after) {
    nodes { id slug title author { name } categories { slug } }
    pageInfo { hasNextPage hasPreviousPage endCursor }
  }
}
"""


@pytest.fixture
async def client(container: Container, sample_export: dict) -> AsyncGenerator[AsyncClient, None]:
    await container.ingestion.ingest(sample_export)
    app = create_application(container=container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestGraphQLQueries:
    @pytest.mark.asyncio
    async def test_posts_first_page(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": 2}})

        assert response.status_code == 200
        body = response.json()
        assert "errors" not in body
        connection = body["data"]["posts"]
        assert [n["id"] for n in connection["nodes"]] == ["5", "4"]
        assert connection["nodes"][0]["author"] == {"name": "Ana"}
        assert connection["pageInfo"]["hasNextPage"] is True
        assert connection["pageInfo"]["hasPreviousPage"] is False

    @pytest.mark.asyncio
    async def test_follow_cursor(self, client: AsyncClient) -> None:
        first = (await client.post(GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": 4}})).json()
        cursor = first["data"]["posts"]["pageInfo"]["endCursor"]

        second = (await client.post(
            GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": 4, "after": cursor}}
        )).json()

        assert [n["id"] for n in second["data"]["posts"]["nodes"]] == ["1"]
        assert second["data"]["posts"]["pageInfo"]["hasNextPage"] is False

    @pytest.mark.asyncio
    async def test_post_not_found_is_null(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={"query": '{ post(slug: "no-existe") { id } }'})

        assert response.status_code == 200
        assert response.json() == {"data": {"post": None}}

    @pytest.mark.asyncio
    async def test_health_fields(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={"query": "{ health dbStatus }"})

        assert response.json()["data"] == {"health": True, "dbStatus": True}

    @pytest.mark.asyncio
    async def test_terms_query(self, client: AsyncClient) -> None:
        query = "{ categories { nodes { name count } } tag(slug: \"python\") { name count } }"

        data = (await client.post(GRAPHQL_URL, json={"query": query})).json()["data"]

        assert data["categories"]["nodes"] == [{"name": "Eventos", "count": 2}, {"name": "Noticias", "count": 3}]
        assert data["tag"] == {"name": "Python", "count": 2}

    @pytest.mark.asyncio
    async def test_posts_search_argument(self, client: AsyncClient) -> None:
        query = '{ posts(search: "contenido 4") { nodes { id } pageInfo { hasNextPage } } }'

        data = (await client.post(GRAPHQL_URL, json={"query": query})).json()["data"]

        assert data["posts"] == {"nodes": [{"id": "4"}], "pageInfo": {"hasNextPage": False}}

    @pytest.mark.asyncio
    async def test_post_slug_lookup_ignores_case(self, client: AsyncClient) -> None:
        data = (await client.post(GRAPHQL_URL, json={"query": '{ post(slug: "POST-3") { id } }'})).json()["data"]

        assert data == {"post": {"id": "3"}}


class TestGraphQLErrors:
    @pytest.mark.asyncio
    async def test_missing_query_is_bad_request(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={})

        assert response.status_code == 400
        assert response.json()["errors"][0]["extensions"]["code"] == "BAD_REQUEST"

    @pytest.mark.asyncio
    async def test_invalid_cursor_is_typed_error(self, client: AsyncClient) -> None:
        response = await client.post(
            GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": 2, "after": "basura"}}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"] is None
        assert body["errors"][0]["extensions"]["code"] == "INVALID_CURSOR"
        assert body["errors"][0]["path"] == ["posts"]

    @pytest.mark.asyncio
    async def test_negative_first_is_typed_error(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": -5}})

        assert response.json()["errors"][0]["extensions"]["code"] == "INVALID_ARGUMENT"

    @pytest.mark.asyncio
    async def test_unknown_field_is_validation_error(self, client: AsyncClient) -> None:
        response = await client.post(GRAPHQL_URL, json={"query": "{ noExiste }"})

        assert response.status_code == 200
        assert response.json()["errors"][0]["extensions"]["code"] == "GRAPHQL_VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_store_down_is_service_unavailable(
        self, client: AsyncClient, container: Container, monkeypatch
    ) -> None:
        async def unavailable(*args, **kwargs):
            raise StoreUnavailableError()

        monkeypatch.setattr(container.query_service, "posts", unavailable)

        response = await client.post(GRAPHQL_URL, json={"query": POSTS_QUERY, "variables": {"first": 2}})

        assert response.status_code == 503
        assert response.json()["errors"][0]["extensions"]["code"] == "STORE_UNAVAILABLE"


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_health_endpoint(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] is True


class TestDependencyWiring:
    @pytest.mark.asyncio
    async def test_endpoint_resolves_service_through_dependency(self, container: Container) -> None:
        class _DownService:
            async def health(self) -> bool:
                return False

        app = create_application(container=container)
        app.dependency_overrides[get_query_service] = lambda: _DownService()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(GRAPHQL_URL, json={"query": "{ health }"})

        assert response.json() == {"data": {"health": False}}

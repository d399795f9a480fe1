"""
Tests unitarios para el QueryService.

Verifica:
- paginacion keyset completa (sin duplicados ni huecos) para varios tamanos
- filtros por categoria / tag y busqueda de texto
- slugs de entrada normalizados (trim + minusculas)
- no-encontrado como None, argumentos invalidos como error
- cache de resultados e invalidacion tras una ingesta con cambios
"""
from __future__ import annotations

import copy

import pytest
from sqlalchemy.exc import OperationalError

from content_sync.application.services.query_service import QueryService
from content_sync.core.container import Container
from content_sync.infrastructure.cache.result_cache import ResultCache
from content_sync.shared.exceptions.domain import (
    InvalidCursorError,
    InvalidQueryArgumentError,
    StoreUnavailableError,
)


@pytest.fixture
async def service(container: Container, sample_export: dict) -> QueryService:
    await container.ingestion.ingest(sample_export)
    return container.query_service


async def _collect_all(service: QueryService, first: int, after: str = None, **filters) -> list:
    ids = []
    while True:
        page = await service.posts(first=first, after=after, **filters)
        ids.extend(node["id"] for node in page["nodes"])
        if not page["pageInfo"]["hasNextPage"]:
            return ids
        after = page["pageInfo"]["endCursor"]


class _BrokenSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("store caido"))

    async def __aexit__(self, *exc_info):
        return False


class TestPostsPagination:
    @pytest.mark.asyncio
    async def test_pages_of_two(self, service: QueryService) -> None:
        first = await service.posts(first=2)
        second = await service.posts(first=2, after=first["pageInfo"]["endCursor"])
        third = await service.posts(first=2, after=second["pageInfo"]["endCursor"])

        assert [n["id"] for n in first["nodes"]] == ["5", "4"]
        assert [n["id"] for n in second["nodes"]] == ["3", "2"]
        assert [n["id"] for n in third["nodes"]] == ["1"]
        assert first["pageInfo"]["hasNextPage"] is True
        assert first["pageInfo"]["hasPreviousPage"] is False
        assert second["pageInfo"]["hasPreviousPage"] is True
        assert third["pageInfo"]["hasNextPage"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [1, 2, 3, 4, 5, 10])
    async def test_every_post_exactly_once(self, service: QueryService, page_size: int) -> None:
        ids = await _collect_all(service, page_size)

        assert ids == ["5", "4", "3", "2", "1"]

    @pytest.mark.asyncio
    async def test_drafts_are_not_listed(self, service: QueryService) -> None:
        page = await service.posts(first=50)

        assert "6" not in [n["id"] for n in page["nodes"]]

    @pytest.mark.asyncio
    async def test_default_and_clamped_page_size(self, service: QueryService) -> None:
        assert service.clamp_first(None) == 10
        assert service.clamp_first(500) == 100

        page = await service.posts(first=500)

        assert len(page["nodes"]) == 5
        assert page["pageInfo"]["hasNextPage"] is False

    @pytest.mark.asyncio
    async def test_first_zero_returns_empty_page(self, service: QueryService) -> None:
        page = await service.posts(first=0)

        assert page["nodes"] == []
        assert page["pageInfo"]["endCursor"] is None

    @pytest.mark.asyncio
    async def test_negative_first_is_rejected(self, service: QueryService) -> None:
        with pytest.raises(InvalidQueryArgumentError):
            await service.posts(first=-1)

    @pytest.mark.asyncio
    async def test_invalid_cursor_is_rejected(self, service: QueryService) -> None:
        with pytest.raises(InvalidCursorError):
            await service.posts(first=2, after="basura")

    @pytest.mark.asyncio
    async def test_insert_between_pages_does_not_duplicate(
        self, service: QueryService, container: Container, sample_export: dict
    ) -> None:
        first = await service.posts(first=2)

        newer = copy.deepcopy(sample_export["posts"][0])
        newer.update({"id": 9, "slug": "post-9", "date_gmt": "2024-02-01T10:00:00", "modified_gmt": None})
        await container.ingestion.ingest({"posts": [newer]})

        rest = await _collect_all(service, 2, after=first["pageInfo"]["endCursor"])
        assert rest == ["3", "2", "1"]


class TestFilters:
    @pytest.mark.asyncio
    async def test_filter_by_category(self, service: QueryService) -> None:
        assert await _collect_all(service, 2, category="noticias") == ["3", "2", "1"]

    @pytest.mark.asyncio
    async def test_filter_by_tag(self, service: QueryService) -> None:
        assert await _collect_all(service, 1, tag="python") == ["4", "2"]

    @pytest.mark.asyncio
    async def test_filter_slug_is_case_insensitive(self, service: QueryService) -> None:
        assert await _collect_all(service, 2, category=" NOTICIAS ") == ["3", "2", "1"]

    @pytest.mark.asyncio
    async def test_search_matches_title(self, service: QueryService) -> None:
        page = await service.posts(search="post 3")

        assert [n["id"] for n in page["nodes"]] == ["3"]

    @pytest.mark.asyncio
    async def test_search_paginates_over_content(self, service: QueryService) -> None:
        assert await _collect_all(service, 2, search="CONTENIDO") == ["5", "4", "3", "2", "1"]

    @pytest.mark.asyncio
    async def test_search_combines_with_category(self, service: QueryService) -> None:
        assert await _collect_all(service, 1, search="contenido", category="eventos") == ["5", "4"]

    @pytest.mark.asyncio
    async def test_search_wildcards_are_literal(self, service: QueryService) -> None:
        page = await service.posts(search="%")

        assert page["nodes"] == []

    @pytest.mark.asyncio
    async def test_blank_search_is_no_filter(self, service: QueryService) -> None:
        page = await service.posts(first=10, search="   ")

        assert len(page["nodes"]) == 5

    @pytest.mark.asyncio
    async def test_unknown_category_yields_empty_page(self, service: QueryService) -> None:
        page = await service.posts(category="no-existe")

        assert page["nodes"] == []
        assert page["pageInfo"]["hasNextPage"] is False


class TestLookups:
    @pytest.mark.asyncio
    async def test_post_by_slug(self, service: QueryService) -> None:
        node = await service.post("post-2")

        assert node["id"] == "2"
        assert node["title"] == "Post 2"
        assert node["author"]["name"] == "Ana"
        assert [c["slug"] for c in node["categories"]] == ["noticias"]
        assert [t["slug"] for t in node["tags"]] == ["python"]
        assert node["date"].startswith("2024-01-02T10:00:00")

    @pytest.mark.asyncio
    async def test_lookup_slug_is_normalized(self, service: QueryService) -> None:
        assert (await service.post("Post-2"))["id"] == "2"
        assert (await service.category(" Noticias "))["slug"] == "noticias"
        assert (await service.tag("PYTHON"))["count"] == 2

    @pytest.mark.asyncio
    async def test_mixed_case_source_slug_found_by_original_spelling(
        self, service: QueryService, container: Container, sample_export: dict
    ) -> None:
        raw = copy.deepcopy(sample_export["posts"][0])
        raw.update({"id": 30, "slug": "Hello-World", "date_gmt": "2024-02-01T10:00:00", "modified_gmt": None})
        await container.ingestion.ingest({"posts": [raw]})

        node = await service.post("Hello-World")

        assert node["id"] == "30"
        assert node["slug"] == "hello-world"

    @pytest.mark.asyncio
    async def test_unknown_or_draft_slug_is_none(self, service: QueryService) -> None:
        assert await service.post("no-existe") is None
        assert await service.post("post-6") is None

    @pytest.mark.asyncio
    async def test_categories_sorted_by_name_with_counts(self, service: QueryService) -> None:
        page = await service.categories()

        assert [(n["name"], n["count"]) for n in page["nodes"]] == [("Eventos", 2), ("Noticias", 3)]

    @pytest.mark.asyncio
    async def test_terms_pagination(self, service: QueryService) -> None:
        first = await service.categories(first=1)
        second = await service.categories(first=1, after=first["pageInfo"]["endCursor"])

        assert first["nodes"][0]["slug"] == "eventos"
        assert second["nodes"][0]["slug"] == "noticias"
        assert second["pageInfo"]["hasNextPage"] is False
        assert second["pageInfo"]["hasPreviousPage"] is True

    @pytest.mark.asyncio
    async def test_category_cursor_rejected_for_tags(self, service: QueryService) -> None:
        page = await service.categories(first=1)

        with pytest.raises(InvalidCursorError):
            await service.tags(first=1, after=page["pageInfo"]["endCursor"])

    @pytest.mark.asyncio
    async def test_term_by_slug(self, service: QueryService) -> None:
        assert (await service.tag("python"))["count"] == 2
        assert await service.category("no-existe") is None


class TestCaching:
    @pytest.mark.asyncio
    async def test_repeated_query_served_from_cache(self, service: QueryService, container: Container) -> None:
        first = await service.posts(first=2)
        second = await service.posts(first=2)

        assert first == second
        assert container.cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_not_found_is_cached_too(self, service: QueryService, container: Container) -> None:
        await service.post("no-existe")
        await service.post("no-existe")

        assert container.cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_ingestion_with_changes_invalidates(
        self, service: QueryService, container: Container, sample_export: dict
    ) -> None:
        before = await service.post("post-1")

        changed = copy.deepcopy(sample_export["posts"][0])
        changed["title"] = {"rendered": "Titulo nuevo"}
        changed["modified_gmt"] = "2024-03-01T10:00:00"
        report = await container.ingestion.ingest({"posts": [changed]})

        after = await service.post("post-1")
        assert report["cache_invalidated"] is True
        assert before["title"] == "Post 1"
        assert after["title"] == "Titulo nuevo"

    @pytest.mark.asyncio
    async def test_committed_posts_visible_before_resolver_runs(
        self, service: QueryService, container: Container, sample_export: dict, monkeypatch
    ) -> None:
        await service.posts(first=10)
        seen_during_resolve = []
        original_resolve = container.ingestion.resolver.resolve

        async def resolve_after_read(posts):
            page = await service.posts(first=10)
            seen_during_resolve.extend(n["id"] for n in page["nodes"])
            return await original_resolve(posts)

        monkeypatch.setattr(container.ingestion.resolver, "resolve", resolve_after_read)

        newer = copy.deepcopy(sample_export["posts"][0])
        newer.update({"id": 99, "slug": "post-99", "date_gmt": "2024-02-01T10:00:00", "modified_gmt": None})
        await container.ingestion.ingest({"posts": [newer]})

        assert "99" in seen_during_resolve

    @pytest.mark.asyncio
    async def test_cached_and_fresh_results_match(self, service: QueryService, container: Container) -> None:
        cached = await service.categories()
        container.cache.invalidate_all()
        fresh = await service.categories()

        assert cached == fresh


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_db_status(self, service: QueryService) -> None:
        assert await service.db_status() is True

    @pytest.mark.asyncio
    async def test_db_status_never_raises(self) -> None:
        broken = QueryService(lambda: _BrokenSession(), ResultCache())

        assert await broken.db_status() is False

    @pytest.mark.asyncio
    async def test_unreachable_store_raises_unavailable(self) -> None:
        broken = QueryService(lambda: _BrokenSession(), ResultCache())

        with pytest.raises(StoreUnavailableError):
            await broken.posts(first=2)

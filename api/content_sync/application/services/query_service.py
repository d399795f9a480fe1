"""
Query Service.

Contrato fijo de lectura sobre el store:
- health / db_status
- post(slug), category(slug), tag(slug)  -> nodo o None (no-encontrado no es error)
- posts / categories / tags(first, after) -> {nodes, pageInfo}
- posts acepta ademas category, tag (slugs) y search (texto)

Los slugs de entrada se normalizan igual que en la ingesta (trim +
minusculas), asi `Post-2` y `post-2` resuelven al mismo registro.

Paginacion keyset con cursores opacos (ver cursor.py). Los resultados pasan
por el ResultCache con una firma (operacion + argumentos normalizados).

El servicio no guarda estado entre requests: cada operacion abre su propia
sesion del pool compartido.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from content_sync.application.services.content_normalizer import normalize_slug
from content_sync.application.services.cursor import (
    decode_post_cursor,
    decode_term_cursor,
    encode_post_cursor,
    encode_term_cursor,
)
from content_sync.infrastructure.cache.result_cache import ResultCache, build_signature
from content_sync.infrastructure.database.errors import classify_store_error
from content_sync.infrastructure.database.models import CategoryModel, TagModel
from content_sync.infrastructure.repositories.content_read_repository import ContentReadRepository
from content_sync.shared.exceptions.domain import InvalidQueryArgumentError
from content_sync.shared.utils.datetime_utils import to_iso_string


DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# coleccion -> (modelo, operacion de lookup por slug)
_TERM_MODELS = {
    "categories": (CategoryModel, "category"),
    "tags": (TagModel, "tag"),
}


def _optional_slug(value: Optional[str]) -> Optional[str]:
    return None if value is None else normalize_slug(value)


def _optional_search(value: Optional[str]) -> Optional[str]:
    """Texto de busqueda sin espacios alrededor; vacio equivale a sin filtro."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _page_info(has_next: bool, has_previous: bool, start: Optional[str], end: Optional[str]) -> Dict[str, Any]:
    return {
        "hasNextPage": has_next,
        "hasPreviousPage": has_previous,
        "startCursor": start,
        "endCursor": end,
    }


def author_node(author) -> Optional[Dict[str, Any]]:
    if author is None:
        return None
    return {
        "id": author.external_id,
        "name": author.display_name,
        "slug": author.slug or author.external_id,
        "avatar": author.avatar_url,
    }


def term_node(term) -> Dict[str, Any]:
    return {
        "id": term.external_id,
        "name": term.name,
        "slug": term.slug,
        "description": term.description or None,
        "count": term.member_count or 0,
    }


def post_node(post, author=None, categories=(), tags=()) -> Dict[str, Any]:
    featured = None
    if post.featured_media_ref or post.featured_media_url:
        featured = {
            "id": post.featured_media_ref,
            "sourceUrl": post.featured_media_url,
        }
    return {
        "id": post.external_id,
        "slug": post.slug,
        "status": post.status,
        "title": post.title,
        "content": post.body,
        "excerpt": post.excerpt,
        "date": to_iso_string(post.published_at),
        "modified": to_iso_string(post.modified_at),
        "author": author_node(author),
        "featuredImage": featured,
        "categories": [term_node(c) for c in categories],
        "tags": [term_node(t) for t in tags],
    }


class QueryService:
    """
    Servicio de consultas.

    Uso:
        service = QueryService(session_factory, cache)
        page = await service.posts(first=10)
        next_page = await service.posts(first=10, after=page["pageInfo"]["endCursor"])
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: ResultCache,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Salud
    # ------------------------------------------------------------------

    async def health(self) -> bool:
        """Liveness: si el proceso responde, esta vivo."""
        return True

    async def db_status(self) -> bool:
        """Alcanzabilidad del store. Nunca lanza."""
        try:
            async with self._session_factory() as session:
                await ContentReadRepository(session).ping()
            return True
        except Exception as e:
            logger.warning(f"Store no alcanzable: {type(e).__name__}: {e}")
            return False

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    async def post(self, slug: str) -> Optional[Dict[str, Any]]:
        """Post publicado por slug, o None."""
        slug = normalize_slug(slug)

        async def compute(repo: ContentReadRepository):
            post = await repo.get_published_post_by_slug(slug)
            if post is None:
                return None
            nodes = await self._build_post_nodes(repo, [post])
            return nodes[0]

        return await self._cached("post", {"slug": slug}, compute)

    async def posts(
        self,
        first: Optional[int] = None,
        after: Optional[str] = None,
        category: Optional[str] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Connection de posts publicados.

        Filtros opcionales: slug de categoria, slug de tag y `search`
        (subcadena en titulo, contenido o resumen, sin distinguir mayusculas).
        Se combinan con AND.
        """
        limit = self.clamp_first(first)
        position = decode_post_cursor(after)
        category = _optional_slug(category)
        tag = _optional_slug(tag)
        search = _optional_search(search)

        async def compute(repo: ContentReadRepository):
            rows = await repo.list_published_posts(
                limit + 1, position, category_slug=category, tag_slug=tag, search=search
            )
            has_next = len(rows) > limit
            rows = rows[:limit]
            has_previous = False
            if position is not None:
                has_previous = await repo.has_published_posts_before(
                    position, category_slug=category, tag_slug=tag, search=search
                )
            nodes = await self._build_post_nodes(repo, rows)
            start = encode_post_cursor(rows[0].published_at, rows[0].external_id) if rows else None
            end = encode_post_cursor(rows[-1].published_at, rows[-1].external_id) if rows else None
            return {"nodes": nodes, "pageInfo": _page_info(has_next, has_previous, start, end)}

        arguments = {"first": limit, "after": after, "category": category, "tag": tag, "search": search}
        return await self._cached("posts", arguments, compute)

    async def categories(self, first: Optional[int] = None, after: Optional[str] = None) -> Dict[str, Any]:
        return await self._terms("categories", first, after)

    async def tags(self, first: Optional[int] = None, after: Optional[str] = None) -> Dict[str, Any]:
        return await self._terms("tags", first, after)

    async def category(self, slug: str) -> Optional[Dict[str, Any]]:
        return await self._term_by_slug("categories", slug)

    async def tag(self, slug: str) -> Optional[Dict[str, Any]]:
        return await self._term_by_slug("tags", slug)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def clamp_first(self, first: Optional[int]) -> int:
        """Tamano de pagina efectivo: default si falta, acotado al maximo."""
        if first is None:
            return min(self._default_page_size, self._max_page_size)
        if first < 0:
            raise InvalidQueryArgumentError("first", f"'first' no puede ser negativo: {first}")
        return min(first, self._max_page_size)

    async def _terms(self, collection: str, first: Optional[int], after: Optional[str]) -> Dict[str, Any]:
        model, _ = _TERM_MODELS[collection]
        limit = self.clamp_first(first)
        position = decode_term_cursor(collection, after)

        async def compute(repo: ContentReadRepository):
            rows = await repo.list_terms(model, limit + 1, position)
            has_next = len(rows) > limit
            rows = rows[:limit]
            has_previous = False
            if position is not None:
                has_previous = await repo.has_terms_before(model, position)
            start = encode_term_cursor(collection, rows[0].name, rows[0].external_id) if rows else None
            end = encode_term_cursor(collection, rows[-1].name, rows[-1].external_id) if rows else None
            return {
                "nodes": [term_node(t) for t in rows],
                "pageInfo": _page_info(has_next, has_previous, start, end),
            }

        return await self._cached(collection, {"first": limit, "after": after}, compute)

    async def _term_by_slug(self, collection: str, slug: str) -> Optional[Dict[str, Any]]:
        model, operation = _TERM_MODELS[collection]
        slug = normalize_slug(slug)

        async def compute(repo: ContentReadRepository):
            term = await repo.get_term_by_slug(model, slug)
            return term_node(term) if term is not None else None

        return await self._cached(operation, {"slug": slug}, compute)

    async def _build_post_nodes(self, repo: ContentReadRepository, posts: List[Any]) -> List[Dict[str, Any]]:
        """Arma los nodos cargando autores y terminos en lote (sin N+1)."""
        post_ids = [p.external_id for p in posts]
        authors = await repo.get_authors(sorted({p.author_ref for p in posts if p.author_ref}))
        categories = await repo.get_categories_for_posts(post_ids)
        tags = await repo.get_tags_for_posts(post_ids)
        return [
            post_node(
                p,
                author=authors.get(p.author_ref) if p.author_ref else None,
                categories=categories.get(p.external_id, []),
                tags=tags.get(p.external_id, []),
            )
            for p in posts
        ]

    async def _cached(
        self,
        operation: str,
        arguments: Dict[str, Any],
        compute: Callable[[ContentReadRepository], Awaitable[Any]],
    ) -> Any:
        """
        Resuelve via cache; en miss ejecuta la consulta y guarda el resultado.

        La generacion se lee antes de consultar el store: si una ingesta
        invalida el cache mientras tanto, el resultado no se guarda.
        """
        signature = build_signature(operation, arguments)
        generation = self._cache.generation
        cached = self._cache.get(signature)
        if cached is not None:
            return cached["result"]

        try:
            async with self._session_factory() as session:
                result = await compute(ContentReadRepository(session))
        except (SQLAlchemyError, OSError) as e:
            error = classify_store_error(e)
            logger.error(f"Consulta '{operation}' fallida: {error.message}")
            raise error from e

        self._cache.put(signature, {"result": result}, generation=generation)
        return result

"""
Repositorio de lectura del contenido sincronizado.
Consultas keyset para el Query Service; nunca escribe.
"""
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, exists, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.application.services.cursor import PostCursor, TermCursor
from content_sync.infrastructure.database.models import (
    AuthorModel,
    CategoryModel,
    PostCategoryModel,
    PostModel,
    PostTagModel,
    TagModel,
)
from content_sync.shared.constants.content_constants import PostStatus


def _escape_like(value: str) -> str:
    """Escapa los comodines de LIKE para buscar el texto literal."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ContentReadRepository:
    """Repositorio para consultar posts, terminos y autores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ping(self) -> None:
        """SELECT 1 contra el store; propaga el error si no responde."""
        await self.db.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def get_published_post_by_slug(self, slug: str) -> Optional[PostModel]:
        """
        Obtiene un post publicado por su slug.
        """
        result = await self.db.execute(
            select(PostModel).where(
                PostModel.slug == slug,
                PostModel.status == PostStatus.PUBLISH.value,
            )
        )
        return result.scalars().first()

    def _published_posts(
        self,
        category_slug: Optional[str],
        tag_slug: Optional[str],
        search: Optional[str] = None,
    ):
        stmt = select(PostModel).where(PostModel.status == PostStatus.PUBLISH.value)
        if search is not None:
            pattern = f"%{_escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    PostModel.title.ilike(pattern, escape="\\"),
                    PostModel.body.ilike(pattern, escape="\\"),
                    PostModel.excerpt.ilike(pattern, escape="\\"),
                )
            )
        if category_slug is not None:
            stmt = stmt.where(
                exists()
                .where(PostCategoryModel.post_external_id == PostModel.external_id)
                .where(PostCategoryModel.category_external_id == CategoryModel.external_id)
                .where(CategoryModel.slug == category_slug)
            )
        if tag_slug is not None:
            stmt = stmt.where(
                exists()
                .where(PostTagModel.post_external_id == PostModel.external_id)
                .where(PostTagModel.tag_external_id == TagModel.external_id)
                .where(TagModel.slug == tag_slug)
            )
        return stmt

    async def list_published_posts(
        self,
        limit: int,
        after: Optional[PostCursor] = None,
        *,
        category_slug: Optional[str] = None,
        tag_slug: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[PostModel]:
        """
        Posts publicados en orden published_at DESC, external_id DESC,
        estrictamente despues del cursor.

        `search` filtra por subcadena (sin distinguir mayusculas) en titulo,
        cuerpo o resumen.
        """
        stmt = self._published_posts(category_slug, tag_slug, search)
        if after is not None:
            stmt = stmt.where(
                or_(
                    PostModel.published_at < after.published_at,
                    and_(
                        PostModel.published_at == after.published_at,
                        PostModel.external_id < after.external_id,
                    ),
                )
            )
        stmt = stmt.order_by(PostModel.published_at.desc(), PostModel.external_id.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def has_published_posts_before(
        self,
        position: PostCursor,
        *,
        category_slug: Optional[str] = None,
        tag_slug: Optional[str] = None,
        search: Optional[str] = None,
    ) -> bool:
        """True si existe algun post ordenado antes de la posicion dada."""
        stmt = self._published_posts(category_slug, tag_slug, search).where(
            or_(
                PostModel.published_at > position.published_at,
                and_(
                    PostModel.published_at == position.published_at,
                    PostModel.external_id >= position.external_id,
                ),
            )
        )
        result = await self.db.execute(select(stmt.exists()))
        return bool(result.scalar())

    # ------------------------------------------------------------------
    # Terminos (categorias / tags)
    # ------------------------------------------------------------------

    async def get_term_by_slug(self, model: type, slug: str):
        result = await self.db.execute(select(model).where(model.slug == slug))
        return result.scalars().first()

    async def list_terms(self, model: type, limit: int, after: Optional[TermCursor] = None) -> list:
        """Terminos en orden name ASC, external_id ASC, estrictamente despues del cursor."""
        stmt = select(model)
        if after is not None:
            stmt = stmt.where(
                or_(
                    model.name > after.name,
                    and_(model.name == after.name, model.external_id > after.external_id),
                )
            )
        stmt = stmt.order_by(model.name.asc(), model.external_id.asc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def has_terms_before(self, model: type, position: TermCursor) -> bool:
        stmt = select(model).where(
            or_(
                model.name < position.name,
                and_(model.name == position.name, model.external_id <= position.external_id),
            )
        )
        result = await self.db.execute(select(stmt.exists()))
        return bool(result.scalar())

    # ------------------------------------------------------------------
    # Carga en lote para nodos de post
    # ------------------------------------------------------------------

    async def get_authors(self, external_ids: Sequence[str]) -> Dict[str, AuthorModel]:
        if not external_ids:
            return {}
        result = await self.db.execute(
            select(AuthorModel).where(AuthorModel.external_id.in_(list(external_ids)))
        )
        return {a.external_id: a for a in result.scalars().all()}

    async def get_categories_for_posts(self, post_ids: Sequence[str]) -> Dict[str, List[CategoryModel]]:
        return await self._terms_for_posts(
            CategoryModel, PostCategoryModel, PostCategoryModel.category_external_id, post_ids
        )

    async def get_tags_for_posts(self, post_ids: Sequence[str]) -> Dict[str, List[TagModel]]:
        return await self._terms_for_posts(TagModel, PostTagModel, PostTagModel.tag_external_id, post_ids)

    async def _terms_for_posts(self, model, assoc, term_column, post_ids: Sequence[str]) -> Dict[str, list]:
        grouped: Dict[str, list] = {post_id: [] for post_id in post_ids}
        if not post_ids:
            return grouped
        result = await self.db.execute(
            select(assoc.post_external_id, model)
            .join(model, model.external_id == term_column)
            .where(assoc.post_external_id.in_(list(post_ids)))
            .order_by(model.name.asc(), model.external_id.asc())
        )
        for post_id, term in result.all():
            grouped[post_id].append(term)
        return grouped

"""
Relationship Resolver.

Corre despues de que todos los tipos del batch hicieron commit, en una sola
transaccion:
- sincroniza el set completo de asociaciones post<->categoria y post<->tag
  de cada post del batch (las que ya no vienen se borran)
- resuelve author_ref de cada post del batch
- recalcula member_count de los terminos tocados

Una asociacion hacia un extremo inexistente es un DanglingReferenceError:
se registra, no se crea la fila y el batch sigue.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from loguru import logger
from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_sync.domain.entities.content import Post
from content_sync.domain.entities.results import RecordError, ResolutionResult
from content_sync.infrastructure.database.errors import classify_store_error
from content_sync.infrastructure.database.models import (
    AuthorModel,
    CategoryModel,
    PostCategoryModel,
    PostModel,
    PostTagModel,
    TagModel,
)
from content_sync.infrastructure.ingestion.ingestion_lock import try_advisory_xact_lock
from content_sync.infrastructure.ingestion.upsert_engine import (
    EXISTING_LOOKUP_CHUNK,
    collapse_duplicates,
)
from content_sync.shared.constants.content_constants import (
    ASSOCIATIONS_LOCK_NAME,
    ContentKind,
    PostStatus,
)
from content_sync.shared.exceptions.domain import DanglingReferenceError, IngestionBusyError


@dataclass(frozen=True)
class AssociationConfig:
    """Una taxonomia: tabla de asociacion + tabla de terminos."""

    kind: ContentKind
    label: str
    assoc_model: type
    term_model: type
    term_column: str
    ids_attr: str


ASSOCIATION_CONFIGS: Tuple[AssociationConfig, ...] = (
    AssociationConfig(ContentKind.CATEGORIES, "category", PostCategoryModel, CategoryModel,
                      "category_external_id", "category_ids"),
    AssociationConfig(ContentKind.TAGS, "tag", PostTagModel, TagModel,
                      "tag_external_id", "tag_ids"),
)


def _chunks(values: Sequence[str], size: int = EXISTING_LOOKUP_CHUNK) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _dangling(error: DanglingReferenceError, post_id: str, reference: str) -> RecordError:
    return RecordError.from_exception("associations", post_id, error, reference=reference)


class RelationshipResolver:
    """
    Reconciliador de asociaciones y referencias de autor.

    Uso:
        resolver = RelationshipResolver(session_factory)
        result = await resolver.resolve(batch.posts)
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def resolve(self, posts: Sequence[Post]) -> ResolutionResult:
        """
        Reconcilia las asociaciones de los posts del batch.

        Raises:
            StoreUnavailableError / StoreBusyError: fallo fatal, rollback completo
            IngestionBusyError: otro proceso esta resolviendo asociaciones
        """
        unique, _ = collapse_duplicates(ContentKind.POSTS, posts)
        result = ResolutionResult()
        if not unique:
            return result

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if not await try_advisory_xact_lock(session, ASSOCIATIONS_LOCK_NAME):
                        raise IngestionBusyError(ASSOCIATIONS_LOCK_NAME, 0)

                    stored_authors = await self._load_post_authors(session, [p.external_id for p in unique])
                    present = [p for p in unique if p.external_id in stored_authors]

                    for post in unique:
                        if post.external_id not in stored_authors:
                            self._report_missing_post(post, result)

                    for config in ASSOCIATION_CONFIGS:
                        await self._sync_taxonomy(session, config, present, result)

                    await self._resolve_authors(session, present, stored_authors, result)
        except (SQLAlchemyError, OSError) as e:
            error = classify_store_error(e, entity_name="Association")
            logger.error(f"Resolucion de asociaciones abortada, rollback completo: {error.message}")
            raise error from e

        logger.success(
            f"Asociaciones resueltas: added={result.added}, removed={result.removed}, "
            f"authors_linked={result.authors_linked}, dangling={len(result.errors)}"
        )
        return result

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    @staticmethod
    async def _load_post_authors(session: AsyncSession, post_ids: List[str]) -> Dict[str, str]:
        """external_id -> author_ref actual, solo de los posts que existen."""
        found: Dict[str, str] = {}
        for chunk in _chunks(post_ids):
            rows = await session.execute(
                select(PostModel.external_id, PostModel.author_ref).where(PostModel.external_id.in_(chunk))
            )
            for external_id, author_ref in rows.all():
                found[external_id] = author_ref
        return found

    @staticmethod
    def _report_missing_post(post: Post, result: ResolutionResult) -> None:
        """El post no llego al store (fallo en el upsert): sus asociaciones quedan colgando."""
        for config in ASSOCIATION_CONFIGS:
            for term_id in getattr(post, config.ids_attr) or ():
                error = DanglingReferenceError(config.label, term_id, "post", post.external_id)
                result.errors.append(_dangling(error, post.external_id, f"posts:{post.external_id}"))

    # ------------------------------------------------------------------
    # Taxonomias
    # ------------------------------------------------------------------

    async def _sync_taxonomy(
        self,
        session: AsyncSession,
        config: AssociationConfig,
        posts: Sequence[Post],
        result: ResolutionResult,
    ) -> None:
        assoc = config.assoc_model
        term_col = getattr(assoc, config.term_column)

        wanted_terms: Set[str] = set()
        for post in posts:
            wanted_terms.update(getattr(post, config.ids_attr) or ())
        existing_terms = await self._existing_ids(session, config.term_model, sorted(wanted_terms))

        current: Dict[str, Set[str]] = {p.external_id: set() for p in posts}
        for chunk in _chunks(list(current)):
            rows = await session.execute(
                select(assoc.post_external_id, term_col).where(assoc.post_external_id.in_(chunk))
            )
            for post_id, term_id in rows.all():
                current[post_id].add(term_id)

        # Los terminos actuales de todo post del batch se recalculan: un cambio
        # de status del post tambien mueve member_count
        touched: Set[str] = set()
        for terms in current.values():
            touched.update(terms)

        to_insert: List[Dict[str, str]] = []
        for post in posts:
            ids = getattr(post, config.ids_attr)
            if ids is None:
                continue

            desired: Set[str] = set()
            for term_id in ids:
                if term_id in existing_terms:
                    desired.add(term_id)
                    continue
                error = DanglingReferenceError("post", post.external_id, config.label, term_id)
                logger.warning(error.message)
                result.errors.append(_dangling(error, post.external_id, f"{config.kind.value}:{term_id}"))

            stale = current[post.external_id] - desired
            added = desired - current[post.external_id]
            if stale:
                await session.execute(
                    delete(assoc).where(and_(assoc.post_external_id == post.external_id, term_col.in_(stale)))
                )
                result.removed += len(stale)
            for term_id in sorted(added):
                to_insert.append({"post_external_id": post.external_id, config.term_column: term_id})
            touched.update(added)

        if to_insert:
            await session.execute(insert(assoc), to_insert)
            result.added += len(to_insert)

        await self._refresh_member_counts(session, config, sorted(touched))

    @staticmethod
    async def _existing_ids(session: AsyncSession, model: type, ids: List[str]) -> Set[str]:
        found: Set[str] = set()
        for chunk in _chunks(ids):
            rows = await session.execute(select(model.external_id).where(model.external_id.in_(chunk)))
            found.update(rows.scalars().all())
        return found

    @staticmethod
    async def _refresh_member_counts(session: AsyncSession, config: AssociationConfig, term_ids: List[str]) -> None:
        """member_count = asociaciones hacia posts publicados."""
        if not term_ids:
            return
        assoc = config.assoc_model
        term_model = config.term_model
        count = (
            select(func.count())
            .select_from(assoc)
            .join(PostModel, PostModel.external_id == assoc.post_external_id)
            .where(
                getattr(assoc, config.term_column) == term_model.external_id,
                PostModel.status == PostStatus.PUBLISH.value,
            )
            .scalar_subquery()
        )
        for chunk in _chunks(term_ids):
            await session.execute(
                update(term_model)
                .where(term_model.external_id.in_(chunk))
                .values(member_count=count)
                .execution_options(synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Autores
    # ------------------------------------------------------------------

    async def _resolve_authors(
        self,
        session: AsyncSession,
        posts: Sequence[Post],
        stored_authors: Dict[str, str],
        result: ResolutionResult,
    ) -> None:
        referenced = sorted({p.author_ref for p in posts if p.author_ref})
        existing_authors = await self._existing_ids(session, AuthorModel, referenced)

        for post in posts:
            target = post.author_ref
            if target is not None and target not in existing_authors:
                error = DanglingReferenceError("post", post.external_id, "author", target)
                logger.warning(error.message)
                result.errors.append(_dangling(error, post.external_id, f"authors:{target}"))
                target = None

            if stored_authors.get(post.external_id) == target:
                continue
            await session.execute(
                update(PostModel)
                .where(PostModel.external_id == post.external_id)
                .values(author_ref=target)
                .execution_options(synchronize_session=False)
            )
            result.authors_linked += 1

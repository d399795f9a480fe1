"""
Caso de uso de ingesta de un export del CMS.

Flujo:
1. Normalizar (registros malos se reportan y se omiten)
2. Upsert por tipo, cada uno bajo su lock de escritura
   (en paralelo entre tipos si la configuracion lo permite); invalidate_all()
   del cache apenas hace commit un tipo con cambios
3. Relationship Resolver, solo cuando todos los tipos hicieron commit
4. invalidate_all() otra vez si el resolver cambio asociaciones o autores
5. Reporte con conteos por tipo y errores por registro

Un error fatal del store (o un lock ocupado) aborta lo que queda del batch:
se lanza IngestionAbortedError con el reporte parcial de lo que si hizo
commit. El reintento es responsabilidad del caller (RetryPolicy).
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from content_sync.application.services.content_normalizer import ContentNormalizer, NormalizedBatch
from content_sync.domain.entities.results import RecordError, ResolutionResult, UpsertResult
from content_sync.infrastructure.cache.result_cache import ResultCache
from content_sync.infrastructure.ingestion.ingestion_lock import IngestionLockManager
from content_sync.infrastructure.ingestion.relationship_resolver import RelationshipResolver
from content_sync.infrastructure.ingestion.upsert_engine import UpsertEngine
from content_sync.shared.constants.content_constants import (
    ASSOCIATIONS_LOCK_NAME,
    INGEST_KIND_ORDER,
    ContentKind,
)
from content_sync.shared.exceptions.base import AppException
from content_sync.shared.exceptions.domain import IngestionAbortedError


STATUS_COMPLETED = "completed"
STATUS_ABORTED = "aborted"


class IngestionUseCases:
    """
    Orquestador del pipeline de escritura.

    Uso:
        use_cases = IngestionUseCases(normalizer=..., upsert_engine=..., resolver=..., locks=..., cache=...)
        report = await use_cases.ingest(raw_export)
    """

    def __init__(
        self,
        *,
        normalizer: ContentNormalizer,
        upsert_engine: UpsertEngine,
        resolver: RelationshipResolver,
        locks: IngestionLockManager,
        cache: ResultCache,
        parallel_kinds: bool = False,
    ) -> None:
        self.normalizer = normalizer
        self.upsert_engine = upsert_engine
        self.resolver = resolver
        self.locks = locks
        self.cache = cache
        self.parallel_kinds = parallel_kinds

    async def ingest(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Ingresa un batch completo.

        Returns:
            Reporte {status, summary, errors, cache_invalidated}

        Raises:
            IngestionAbortedError: error fatal; lleva el reporte parcial
        """
        batch = self.normalizer.normalize_batch(raw)
        logger.info(
            f"Iniciando ingesta: posts={len(batch.posts)}, categories={len(batch.categories)}, "
            f"tags={len(batch.tags)}, authors={len(batch.authors)} (paralelo={self.parallel_kinds})"
        )

        results, fatal = await self._upsert_kinds(batch)

        resolution: Optional[ResolutionResult] = None
        if fatal is None:
            try:
                resolution = await self._resolve(batch, results)
            except AppException as e:
                fatal = e

        cache_invalidated = self._invalidate_after_resolve(results, resolution)
        report = self._build_report(
            batch,
            results,
            resolution,
            status=STATUS_ABORTED if fatal else STATUS_COMPLETED,
            cache_invalidated=cache_invalidated,
        )

        if fatal is not None:
            logger.error(f"Ingesta abortada ({fatal.error_code}): {fatal.message}")
            raise IngestionAbortedError(fatal, report) from fatal

        logger.success(
            "Ingesta completada: "
            + ", ".join(f"{kind}={counts}" for kind, counts in report["summary"].items())
        )
        return report

    # ------------------------------------------------------------------
    # Pasos
    # ------------------------------------------------------------------

    async def _upsert_kind(self, kind: ContentKind, entities: list) -> UpsertResult:
        async with self.locks.lock(kind.value):
            result = await self.upsert_engine.upsert(kind, entities)
        # El tipo ya hizo commit: ninguna lectura posterior puede salir del cache viejo
        if result.changed:
            self.cache.invalidate_all()
        return result

    async def _upsert_kinds(self, batch: NormalizedBatch):
        """
        Upsert de todos los tipos.

        Returns:
            (resultados por tipo que hicieron commit, primer error fatal o None)
        """
        results: Dict[ContentKind, UpsertResult] = {}
        fatal: Optional[AppException] = None

        if self.parallel_kinds:
            outcomes = await asyncio.gather(
                *(self._upsert_kind(kind, batch.entities_for(kind)) for kind in INGEST_KIND_ORDER),
                return_exceptions=True,
            )
            for kind, outcome in zip(INGEST_KIND_ORDER, outcomes):
                if isinstance(outcome, AppException):
                    fatal = fatal or outcome
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[kind] = outcome
            return results, fatal

        for kind in INGEST_KIND_ORDER:
            try:
                results[kind] = await self._upsert_kind(kind, batch.entities_for(kind))
            except AppException as e:
                return results, e
        return results, None

    async def _resolve(self, batch: NormalizedBatch, results: Dict[ContentKind, UpsertResult]) -> ResolutionResult:
        """Asociaciones de los posts cuya escritura no fue rechazada."""
        post_result = results.get(ContentKind.POSTS)
        rejected = set(post_result.rejected_ids) if post_result else set()
        posts = [p for p in batch.posts if p.external_id not in rejected]

        async with self.locks.lock(ASSOCIATIONS_LOCK_NAME):
            return await self.resolver.resolve(posts)

    def _invalidate_after_resolve(
        self,
        results: Dict[ContentKind, UpsertResult],
        resolution: Optional[ResolutionResult],
    ) -> bool:
        """
        Invalida tras el resolver si cambio alguna asociacion o autor.

        Returns:
            True si el batch invalido el cache en algun paso
        """
        if resolution is not None and resolution.changed:
            self.cache.invalidate_all()
            return True
        return any(r.changed for r in results.values())

    # ------------------------------------------------------------------
    # Reporte
    # ------------------------------------------------------------------

    @staticmethod
    def _build_report(
        batch: NormalizedBatch,
        results: Dict[ContentKind, UpsertResult],
        resolution: Optional[ResolutionResult],
        *,
        status: str,
        cache_invalidated: bool,
    ) -> Dict[str, Any]:
        summary: Dict[str, Dict[str, int]] = {}
        errors: List[RecordError] = []

        for kind in (ContentKind.POSTS, ContentKind.CATEGORIES, ContentKind.TAGS, ContentKind.AUTHORS):
            rejected = batch.errors_for(kind)
            result = results.get(kind) or UpsertResult(kind=kind.value)
            counts = result.counts()
            counts["failed"] += len(rejected)
            summary[kind.value] = counts
            errors.extend(rejected)
            errors.extend(result.failures)

        summary["associations"] = (resolution or ResolutionResult()).counts()
        if resolution is not None:
            errors.extend(resolution.errors)

        return {
            "status": status,
            "summary": summary,
            "errors": [e.to_dict() for e in errors],
            "cache_invalidated": cache_invalidated,
        }

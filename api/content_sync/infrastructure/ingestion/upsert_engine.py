"""
Upsert Engine: escritura idempotente por tipo de contenido.

Diseño (resumen):
- Una transaccion por tipo y batch; un SAVEPOINT por escritura.
- Insert si el external_id no existe; update solo si cambia el hash de
  contenido (y el registro entrante no es mas viejo que el almacenado);
  en otro caso no se escribe nada.
- Como maximo una escritura por external_id por batch: los duplicados se
  colapsan antes de tocar el store.

Politica de fallos:
- Violacion de constraint o valor que el store rechaza (DataError) ->
  ConflictError para esa entidad,
  el batch continua (el SAVEPOINT deja la transaccion utilizable).
- Store caido / pool agotado -> StoreUnavailableError / StoreBusyError:
  rollback completo del tipo. No se reintenta aqui; reintenta el caller.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

from loguru import logger
from sqlalchemy import insert, select, update
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_sync.domain.entities.results import RecordError, UpsertResult
from content_sync.infrastructure.database.errors import classify_store_error
from content_sync.infrastructure.ingestion.ingestion_lock import try_advisory_xact_lock
from content_sync.infrastructure.ingestion.kind_config import KIND_CONFIGS, KindSyncConfig
from content_sync.shared.constants.content_constants import ContentKind
from content_sync.shared.exceptions.domain import ConflictError, IngestionBusyError
from content_sync.shared.utils.datetime_utils import ensure_utc, utc_now


# Tamano maximo de las listas IN al cargar filas existentes
EXISTING_LOOKUP_CHUNK = 500


def collapse_duplicates(kind: ContentKind, entities: Iterable[Any]) -> tuple[list, List[RecordError]]:
    """
    Deja una sola entidad por external_id.

    Gana el modified_at mas nuevo; con empate (o sin modified_at) gana la
    ultima vista. Las descartadas se reportan como fallo.
    """
    chosen: Dict[str, Any] = {}
    superseded: List[RecordError] = []

    for entity in entities:
        current = chosen.get(entity.external_id)
        if current is None:
            chosen[entity.external_id] = entity
            continue

        keep_current = (
            current.modified_at is not None
            and entity.modified_at is not None
            and ensure_utc(entity.modified_at) < ensure_utc(current.modified_at)
        )
        loser = entity if keep_current else current
        if not keep_current:
            chosen[entity.external_id] = entity

        superseded.append(RecordError.from_exception(
            kind.value,
            loser.external_id,
            ConflictError(kind.value, loser.external_id, "duplicado en el batch, se conserva la version mas reciente"),
        ))

    return list(chosen.values()), superseded


class UpsertEngine:
    """
    Escritor por lotes de entidades canonicas.

    Uso:
        engine = UpsertEngine(session_factory)
        result = await engine.upsert(ContentKind.POSTS, batch.posts)
    """

    def __init__(self, session_factory: async_sessionmaker, *, lookup_chunk: int = EXISTING_LOOKUP_CHUNK) -> None:
        self._session_factory = session_factory
        self._lookup_chunk = lookup_chunk

    async def upsert(self, kind: ContentKind, entities: Sequence[Any]) -> UpsertResult:
        """
        Escribe un batch de un tipo dentro de una transaccion.

        Returns:
            UpsertResult con conteos, fallos por entidad y external_ids cambiados

        Raises:
            StoreUnavailableError / StoreBusyError: fallo fatal, nada del tipo quedo escrito
            IngestionBusyError: otro proceso tiene el advisory lock del tipo
        """
        config = KIND_CONFIGS[kind]
        result = UpsertResult(kind=kind.value)

        unique, superseded = collapse_duplicates(kind, entities)
        result.failures.extend(superseded)
        result.failed += len(superseded)

        if not unique:
            return result

        logger.info(f"Upsert '{kind.value}': {len(unique)} entidades (duplicados descartados: {len(superseded)})")

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if not await try_advisory_xact_lock(session, kind.value):
                        logger.warning(f"Upsert '{kind.value}' ya esta corriendo en otro proceso (advisory lock ocupado)")
                        raise IngestionBusyError(kind.value, 0)

                    existing = await self._load_existing(session, config, [e.external_id for e in unique])
                    now = utc_now()
                    for entity in unique:
                        await self._write_one(session, config, entity, existing.get(entity.external_id), now, result)
        except (SQLAlchemyError, OSError) as e:
            error = classify_store_error(e, entity_name=config.entity_name)
            logger.error(f"Upsert '{kind.value}' abortado, rollback completo: {error.message}")
            raise error from e

        logger.success(
            f"Upsert '{kind.value}' completado: inserted={result.inserted}, updated={result.updated}, "
            f"unchanged={result.unchanged}, failed={result.failed}"
        )
        return result

    async def _load_existing(
        self, session: AsyncSession, config: KindSyncConfig, external_ids: List[str]
    ) -> Dict[str, Dict[str, Any]]:
        """Carga hash (y modified_at) de las filas existentes, en chunks."""
        model = config.model
        columns = [model.external_id, model.raw_payload_hash]
        if config.compare_modified:
            columns.append(model.modified_at)

        existing: Dict[str, Dict[str, Any]] = {}
        for start in range(0, len(external_ids), self._lookup_chunk):
            chunk = external_ids[start:start + self._lookup_chunk]
            rows = await session.execute(select(*columns).where(model.external_id.in_(chunk)))
            for row in rows.mappings():
                existing[row["external_id"]] = dict(row)
        return existing

    async def _write_one(
        self,
        session: AsyncSession,
        config: KindSyncConfig,
        entity: Any,
        stored: Dict[str, Any],
        now,
        result: UpsertResult,
    ) -> None:
        model = config.model
        row = entity.to_row()

        if stored is None:
            stmt = insert(model).values(**row, synced_at=now)
            outcome = "inserted"
        elif stored["raw_payload_hash"] == entity.raw_payload_hash:
            result.unchanged += 1
            return
        elif config.compare_modified and self._is_stale(entity, stored):
            # Solo actualiza si el modified_at entrante es >= al almacenado
            logger.debug(f"{config.entity_name} {entity.external_id}: modified_at anterior al almacenado, se ignora")
            result.unchanged += 1
            return
        else:
            values = {k: v for k, v in row.items() if k != "external_id"}
            stmt = (
                update(model)
                .where(model.external_id == entity.external_id)
                .values(**values, updated_at=now, synced_at=now)
            )
            outcome = "updated"

        try:
            async with session.begin_nested():
                await session.execute(stmt)
        except (IntegrityError, DataError) as e:
            # Fila rechazada por el store (unicidad o valor fuera de rango): falla solo esta entidad
            conflict = classify_store_error(e, entity_name=config.entity_name, external_id=entity.external_id)
            logger.warning(f"{config.entity_name} {entity.external_id} rechazado: {conflict.message}")
            result.failed += 1
            result.failures.append(RecordError.from_exception(config.kind.value, entity.external_id, conflict))
            result.rejected_ids.append(entity.external_id)
            return

        setattr(result, outcome, getattr(result, outcome) + 1)
        result.changed_ids.append(entity.external_id)

    @staticmethod
    def _is_stale(entity: Any, stored: Dict[str, Any]) -> bool:
        stored_modified = stored.get("modified_at")
        if stored_modified is None or entity.modified_at is None:
            return False
        return ensure_utc(entity.modified_at) < ensure_utc(stored_modified)

"""
Contenedor de dependencias del proceso.

Se construye una sola vez a partir de Settings y se comparte por referencia:
engine y pool de conexiones, cache de resultados, Query Service y el caso de
uso de ingesta. No hay estado global de conexion fuera de este objeto.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from content_sync.application.services.content_normalizer import ContentNormalizer
from content_sync.application.services.query_service import QueryService
from content_sync.application.use_cases.ingestion_use_cases import IngestionUseCases
from content_sync.core.config import Settings
from content_sync.infrastructure.cache.result_cache import ResultCache
from content_sync.infrastructure.database.session import create_engine, create_session_factory
from content_sync.infrastructure.ingestion.ingestion_lock import IngestionLockManager
from content_sync.infrastructure.ingestion.relationship_resolver import RelationshipResolver
from content_sync.infrastructure.ingestion.upsert_engine import UpsertEngine
from content_sync.shared.utils.retry import RetryPolicy


@dataclass
class Container:
    """Componentes compartidos por todos los requests."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker
    cache: ResultCache
    locks: IngestionLockManager
    query_service: QueryService
    ingestion: IngestionUseCases
    retry_policy: RetryPolicy


def build_container(settings: Settings, engine: Optional[AsyncEngine] = None) -> Container:
    """
    Arma el grafo de componentes.

    Args:
        settings: configuracion del proceso
        engine: engine ya creado (tests); si falta se crea desde settings
    """
    engine = engine or create_engine(settings)
    session_factory = create_session_factory(engine)

    cache = ResultCache(
        ttl_seconds=settings.CACHE_TTL_SECONDS,
        max_entries=settings.CACHE_MAX_ENTRIES,
        enabled=settings.CACHE_ENABLED,
    )
    locks = IngestionLockManager(timeout=settings.INGEST_LOCK_TIMEOUT)

    # SQLite tiene un solo escritor: los tipos se escriben en serie
    parallel_kinds = settings.INGEST_PARALLEL_KINDS and engine.dialect.name != "sqlite"

    query_service = QueryService(
        session_factory,
        cache,
        default_page_size=settings.QUERY_DEFAULT_PAGE_SIZE,
        max_page_size=settings.QUERY_MAX_PAGE_SIZE,
    )
    ingestion = IngestionUseCases(
        normalizer=ContentNormalizer(),
        upsert_engine=UpsertEngine(session_factory),
        resolver=RelationshipResolver(session_factory),
        locks=locks,
        cache=cache,
        parallel_kinds=parallel_kinds,
    )

    return Container(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        locks=locks,
        query_service=query_service,
        ingestion=ingestion,
        retry_policy=RetryPolicy.from_settings(settings),
    )

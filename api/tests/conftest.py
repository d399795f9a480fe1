"""
Configuración de fixtures para pytest.
"""
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from content_sync.core.config import Settings
from content_sync.core.container import Container, build_container
from content_sync.infrastructure.database.session import (
    create_engine,
    create_session_factory,
    init_db,
)


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Configuracion aislada del entorno para cada test."""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        ENVIRONMENT="test",
        LOG_FILE="",
        CACHE_ENABLED=True,
        CACHE_TTL_SECONDS=300.0,
        CACHE_MAX_ENTRIES=100,
        QUERY_DEFAULT_PAGE_SIZE=10,
        QUERY_MAX_PAGE_SIZE=100,
        INGEST_LOCK_TIMEOUT=1.0,
        INGEST_TOKEN="",
        RETRY_MAX_ATTEMPTS=1,
        RETRY_MIN_BACKOFF=0.0,
        RETRY_MAX_BACKOFF=0.0,
    )


@pytest.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine SQLite en memoria creado con la misma factory que produccion.
    Crea las tablas para cada test y las descarta al final.
    """
    engine = create_engine(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return create_session_factory(engine)


@pytest.fixture
def container(test_settings: Settings, engine: AsyncEngine) -> Container:
    """Container completo sobre el engine de prueba."""
    return build_container(test_settings, engine=engine)


def make_raw_post(external_id: int, day: int, *, categories=(10,), tags=(), status: str = "publish",
                  title: str = None) -> dict:
    """Registro de post con el formato del export del CMS."""
    return {
        "id": external_id,
        "slug": f"post-{external_id}",
        "status": status,
        "title": {"rendered": title or f"Post {external_id}"},
        "content": {"rendered": f"<p>Contenido {external_id}</p>"},
        "excerpt": {"rendered": ""},
        "date_gmt": f"2024-01-{day:02d}T10:00:00",
        "modified_gmt": f"2024-01-{day:02d}T10:00:00",
        "author": 7,
        "categories": list(categories),
        "tags": list(tags),
    }


@pytest.fixture
def sample_export() -> dict:
    """
    Export con 5 posts publicados y 1 borrador.

    Orden de paginacion esperado: 5, 4, 3, 2, 1 (4 y 5 comparten fecha).
    """
    return {
        "categories": [
            {"id": 10, "slug": "noticias", "name": "Noticias"},
            {"id": 11, "slug": "eventos", "name": "Eventos"},
        ],
        "tags": [{"id": 20, "slug": "python", "name": "Python"}],
        "authors": [{"id": 7, "name": "Ana", "slug": "ana"}],
        "posts": [
            make_raw_post(1, 1),
            make_raw_post(2, 2, tags=(20,)),
            make_raw_post(3, 3),
            make_raw_post(4, 5, categories=(11,), tags=(20,)),
            make_raw_post(5, 5, categories=(11,)),
            make_raw_post(6, 6, status="draft"),
        ],
    }

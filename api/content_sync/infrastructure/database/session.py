"""
Gestión del engine y sesiones de base de datos.

No hay engine global: `create_engine` se llama una vez por proceso con la
configuracion explicita y el resultado se pasa a cada componente.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from content_sync.core.config import Settings


# Base para modelos de SQLAlchemy
Base = declarative_base()


def _create_engine_args(settings: Settings, url: str) -> dict:
    """
    Construye los argumentos del engine segun el tipo de base de datos.
    PostgreSQL usa pool de conexiones acotado, SQLite no lo soporta.
    """
    args = {
        "echo": settings.DEBUG,
        "future": True,
    }

    if url.startswith("postgresql"):
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": settings.DB_POOL_TIMEOUT,
            "pool_pre_ping": True,  # Verifica conexion antes de usar
        })
    elif url.startswith("sqlite") and ":memory:" in url:
        # Una sola conexion compartida: cada conexion nueva seria otra base vacia
        args["poolclass"] = StaticPool

    return args


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """
    Ajustes para SQLite:
    - foreign keys activas (integridad referencial de asociaciones)
    - BEGIN explicito para que los SAVEPOINT funcionen con el driver
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(settings: Settings) -> AsyncEngine:
    """Crea el engine async a partir de la configuracion."""
    url = settings.effective_database_url
    engine = create_async_engine(url, **_create_engine_args(settings, url))
    if engine.dialect.name == "sqlite":
        _install_sqlite_hooks(engine)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory ligada al engine del proceso."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def init_db(engine: AsyncEngine) -> None:
    """Inicializa la base de datos creando todas las tablas."""
    # Registrar modelos en Base.metadata antes del create_all
    from content_sync.infrastructure.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Cierra las conexiones de la base de datos."""
    await engine.dispose()

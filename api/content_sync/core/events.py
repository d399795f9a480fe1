"""
Manejadores de inicio y cierre de la aplicacion.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from loguru import logger

from content_sync.core.container import Container
from content_sync.infrastructure.database.session import close_db, init_db


def startup_handler(container: Container) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        container: Contenedor del proceso

    Returns:
        Callable: Funcion asincrona de inicio
    """
    settings = container.settings

    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config(container)

            # Inicializar base de datos (crea tablas si no existen)
            await init_db(container.engine)
            logger.info("Base de datos inicializada")

            # Configurar logging adicional
            if settings.LOG_FILE:
                logger.add(
                    settings.LOG_FILE,
                    rotation="500 MB",
                    retention="10 days",
                    level=settings.LOG_LEVEL
                )

            logger.success("Aplicacion iniciada correctamente")

            _print_available_urls(container)

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config(container: Container) -> None:
    """Valida que la configuracion critica este presente."""
    settings = container.settings
    warnings = []

    if not settings.INGEST_TOKEN:
        warnings.append("INGEST_TOKEN no configurado - los endpoints de escritura no estan protegidos")
    if settings.QUERY_DEFAULT_PAGE_SIZE > settings.QUERY_MAX_PAGE_SIZE:
        warnings.append("QUERY_DEFAULT_PAGE_SIZE mayor que QUERY_MAX_PAGE_SIZE - se usara el maximo")
    if settings.INGEST_PARALLEL_KINDS and not container.ingestion.parallel_kinds:
        warnings.append("INGEST_PARALLEL_KINDS ignorado con SQLite - los tipos se escriben en serie")

    # Mostrar advertencias
    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _print_available_urls(container: Container) -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    settings = container.settings
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  GraphQL:     {base_url}/api/v1/graphql</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Ingesta:     {base_url}/api/v1/ingest</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(container: Container) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        container: Contenedor del proceso

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        removed = container.cache.invalidate_all()
        logger.info(f"Cache de resultados liberado: {removed} entradas")

        # Cerrar conexiones de base de datos
        await close_db(container.engine)
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown


def build_lifespan(container: Container):
    """Lifespan de FastAPI que encadena startup y shutdown."""
    startup = startup_handler(container)
    shutdown = shutdown_handler(container)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await startup()
        try:
            yield
        finally:
            await shutdown()

    return lifespan

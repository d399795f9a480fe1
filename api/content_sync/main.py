"""
Factory de la aplicación FastAPI.
Configura la aplicación, middlewares, rutas y eventos.
"""
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from content_sync.api.middlewares.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from content_sync.api.v1.router import api_router
from content_sync.core.config import Settings, get_cors_origins
from content_sync.core.container import Container, build_container
from content_sync.core.events import build_lifespan


def create_application(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Args:
        settings: configuracion explicita; si falta se lee del entorno
        container: componentes ya construidos (tests); si falta se arma desde settings

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    if container is None:
        container = build_container(settings or Settings())
    settings = container.settings

    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Sincronizacion de contenido del CMS y API de consultas",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=build_lifespan(container),
    )
    application.state.container = container

    # Configurar CORS
    cors_origins = get_cors_origins(settings.CORS_ORIGINS)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware personalizado para manejo de errores
    application.add_middleware(ErrorHandlerMiddleware)

    # Incluir routers de la API
    application.include_router(api_router, prefix="/api")

    # Manejador global de excepciones personalizadas
    register_exception_handlers(application)

    # Health check endpoint
    @application.get("/health", tags=["Health"])
    async def health_check():
        """Endpoint para verificar el estado de la aplicación."""
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": await container.query_service.db_status(),
        }

    return application

"""
Punto de entrada principal de la aplicación FastAPI.
"""
from content_sync.core.config import settings
from content_sync.main import create_application


# Crear instancia de la aplicación
app = create_application(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )

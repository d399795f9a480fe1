"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.

La instancia de Settings se construye una sola vez por proceso y se pasa
explicitamente a cada componente (engine, cache, servicios). Ningun componente
resuelve credenciales por su cuenta.
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    - DATABASE_URL se puede especificar completa o por componentes
    - En tests se usa sqlite+aiosqlite en memoria
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Content Sync API")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="content_user")
    DATABASE_PASSWORD: str = Field(default="content_pass")
    DATABASE_NAME: str = Field(default="content_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)
    # Segundos que una lectura espera por una conexion libre antes de fallar
    DB_POOL_TIMEOUT: float = Field(default=5.0)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    # Query service
    QUERY_DEFAULT_PAGE_SIZE: int = Field(default=10)
    QUERY_MAX_PAGE_SIZE: int = Field(default=100)
    QUERY_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Cache de resultados
    CACHE_ENABLED: bool = Field(default=True)
    CACHE_TTL_SECONDS: float = Field(default=300.0)
    CACHE_MAX_ENTRIES: int = Field(default=2000)

    # Ingesta
    INGEST_LOCK_TIMEOUT: float = Field(default=30.0)
    INGEST_PARALLEL_KINDS: bool = Field(default=True)
    # Token compartido para endpoints de escritura (vacio = sin proteccion)
    INGEST_TOKEN: str = Field(default="")

    # Politica de reintentos (la usan los callers, nunca el motor de upsert)
    RETRY_MAX_ATTEMPTS: int = Field(default=3)
    RETRY_MIN_BACKOFF: float = Field(default=0.5)
    RETRY_MAX_BACKOFF: float = Field(default=8.0)

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia de configuracion del proceso
settings = Settings()

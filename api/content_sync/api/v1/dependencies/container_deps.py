"""
Dependencias para inyeccion de componentes del Container.
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from content_sync.application.services.query_service import QueryService
from content_sync.application.use_cases.ingestion_use_cases import IngestionUseCases
from content_sync.core.container import Container
from content_sync.shared.exceptions.auth import UnauthorizedException


def get_container(request: Request) -> Container:
    """
    Dependencia para obtener el Container del proceso.

    Returns:
        Container: construido una vez en create_application
    """
    return request.app.state.container


def get_query_service(container: Container = Depends(get_container)) -> QueryService:
    """
    Dependencia para obtener el Query Service.

    Returns:
        QueryService: instancia compartida (sin estado por request)
    """
    return container.query_service


def get_ingestion_use_cases(container: Container = Depends(get_container)) -> IngestionUseCases:
    """
    Dependencia para obtener el caso de uso de ingesta.

    Returns:
        IngestionUseCases: instancia compartida (los locks viven en ella)
    """
    return container.ingestion


def require_ingest_token(
    container: Container = Depends(get_container),
    x_ingest_token: Optional[str] = Header(None, alias="X-Ingest-Token"),
) -> None:
    """
    Protege los endpoints de escritura con un token compartido.
    Si INGEST_TOKEN esta vacio no se exige token.
    """
    expected = container.settings.INGEST_TOKEN
    if not expected:
        return
    if not x_ingest_token or not hmac.compare_digest(x_ingest_token.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedException("Token de ingesta invalido o ausente")

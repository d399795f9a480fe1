"""
Endpoint GraphQL del Query Service.

Codigos HTTP:
- 200: resultado con o sin errores tipados (cursor invalido, etc.)
- 400: request sin query
- 503: store no disponible / ocupado o consulta fuera de tiempo
"""
import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from content_sync.api.v1.dependencies.container_deps import get_container, get_query_service
from content_sync.api.v1.graphql.schema import (
    error_body,
    execute_query,
    format_result,
    store_failure,
)
from content_sync.application.services.query_service import QueryService
from content_sync.core.container import Container
from content_sync.shared.exceptions.domain import StoreUnavailableError


router = APIRouter(tags=["GraphQL"])


class GraphQLRequestDTO(BaseModel):
    """Body de un request GraphQL."""
    query: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None
    operationName: Optional[str] = None


@router.post("/graphql")
async def graphql_endpoint(
    request: GraphQLRequestDTO,
    service: QueryService = Depends(get_query_service),
    container: Container = Depends(get_container),
):
    """
    Ejecuta una consulta GraphQL.

    Los errores de store se reintentan con la politica compartida; si persisten
    la respuesta es 503. La consulta completa corre bajo QUERY_TIMEOUT_SECONDS:
    al vencer se cancela y nada parcial queda en cache.
    """
    if not request.query or not request.query.strip():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("No GraphQL query provided", "BAD_REQUEST"),
        )

    async def run():
        result = await execute_query(
            service,
            request.query,
            variables=request.variables,
            operation_name=request.operationName,
        )
        failure = store_failure(result)
        if failure is not None:
            raise failure
        return result

    try:
        result = await asyncio.wait_for(
            container.retry_policy.run(run, description="graphql"),
            timeout=container.settings.QUERY_TIMEOUT_SECONDS,
        )
    except StoreUnavailableError as e:
        logger.error(f"GraphQL: store no disponible ({e.error_code}): {e.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body(e.message, e.error_code),
        )
    except asyncio.TimeoutError:
        logger.error(f"GraphQL: consulta cancelada por timeout ({container.settings.QUERY_TIMEOUT_SECONDS}s)")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body("Tiempo de consulta agotado", "QUERY_TIMEOUT"),
        )

    for error in result.errors or ():
        if error.original_error is not None and not hasattr(error.original_error, "error_code"):
            logger.opt(exception=error.original_error).error(f"GraphQL: error inesperado en {error.path}")

    return format_result(result)

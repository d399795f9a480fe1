"""
Endpoint de ingesta de exports del CMS.
"""
from fastapi import APIRouter, Depends
from loguru import logger

from content_sync.api.v1.dependencies.container_deps import (
    get_container,
    get_ingestion_use_cases,
    require_ingest_token,
)
from content_sync.application.dto.ingestion_dto import ExportBatchDTO, IngestionReportDTO
from content_sync.application.use_cases.ingestion_use_cases import IngestionUseCases
from content_sync.core.container import Container


router = APIRouter(prefix="/ingest", tags=["Ingesta"])


@router.post(
    "",
    response_model=IngestionReportDTO,
    dependencies=[Depends(require_ingest_token)],
)
async def ingest_export(
    batch: ExportBatchDTO,
    use_cases: IngestionUseCases = Depends(get_ingestion_use_cases),
    container: Container = Depends(get_container),
):
    """
    Ingresa un batch del export.

    - 200: reporte (los errores por registro van en `errors`, no fallan el batch)
    - 409: otro batch tiene el lock de escritura de un tipo
    - 503: el store no respondio; `details.report` trae lo que si hizo commit
    """
    raw = batch.to_raw()
    logger.info(
        f"Ingesta solicitada: posts={len(batch.posts)}, categories={len(batch.categories)}, "
        f"tags={len(batch.tags)}"
    )

    async def run():
        return await use_cases.ingest(raw)

    return await container.retry_policy.run(run, description="ingesta")

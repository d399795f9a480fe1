"""
Endpoints de administracion del cache de resultados.
"""
from fastapi import APIRouter, Depends
from loguru import logger

from content_sync.api.v1.dependencies.container_deps import get_container, require_ingest_token
from content_sync.core.container import Container


router = APIRouter(prefix="/cache", tags=["Cache"])


@router.get("/stats")
async def cache_stats(container: Container = Depends(get_container)):
    """Contadores del cache (hits, misses, desalojos, invalidaciones)."""
    return container.cache.stats()


@router.post("/clear", dependencies=[Depends(require_ingest_token)])
async def clear_cache(container: Container = Depends(get_container)):
    """Invalida todas las entradas del cache."""
    removed = container.cache.invalidate_all()
    logger.info(f"Cache limpiado manualmente: {removed} entradas")
    return {"cleared": removed}

"""
DTOs de la ingesta.
Definen el sobre del export que recibe el endpoint y el reporte que retorna.

Los registros individuales se dejan como dicts sueltos: la validacion por
registro es responsabilidad del normalizador (un registro malo no debe
rechazar el batch completo con un 422).
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExportBatchDTO(BaseModel):
    """Sobre de un export del CMS."""

    posts: List[Any] = Field(default_factory=list, description="Registros de posts")
    categories: List[Any] = Field(default_factory=list, description="Registros de categorias")
    tags: List[Any] = Field(default_factory=list, description="Registros de tags")
    authors: Optional[List[Any]] = Field(None, description="Registros de autores (opcional)")

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "posts": self.posts,
            "categories": self.categories,
            "tags": self.tags,
        }
        if self.authors is not None:
            raw["authors"] = self.authors
        return raw

    class Config:
        extra = "allow"


class KindSummaryDTO(BaseModel):
    """Conteos por tipo de entidad."""
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0


class AssociationSummaryDTO(BaseModel):
    """Conteos del Relationship Resolver."""
    added: int = 0
    removed: int = 0
    dangling: int = 0


class IngestionSummaryDTO(BaseModel):
    posts: KindSummaryDTO = Field(default_factory=KindSummaryDTO)
    categories: KindSummaryDTO = Field(default_factory=KindSummaryDTO)
    tags: KindSummaryDTO = Field(default_factory=KindSummaryDTO)
    authors: KindSummaryDTO = Field(default_factory=KindSummaryDTO)
    associations: AssociationSummaryDTO = Field(default_factory=AssociationSummaryDTO)


class RecordErrorDTO(BaseModel):
    """Error por registro o asociacion."""
    kind: str
    external_id: Optional[str] = None
    error: str = Field(..., description="Tipo de error (NormalizationError, DanglingReferenceError, ...)")
    message: str
    reference: Optional[str] = Field(None, description="Extremo faltante, p.ej. 'categories:999'")


class IngestionReportDTO(BaseModel):
    """
    Reporte de un batch.

    status:
    - completed: todos los tipos y las asociaciones hicieron commit
    - aborted: un error fatal del store detuvo el batch (ver summary parcial)
    """
    status: str
    summary: IngestionSummaryDTO
    errors: List[RecordErrorDTO] = Field(default_factory=list)
    cache_invalidated: bool = False

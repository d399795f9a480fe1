"""
Tipos de resultado explicitos que cruzan las fronteras de los componentes.

Cada componente del pipeline retorna exito-con-datos o errores tipados por
registro, en lugar de propagar excepciones todo-o-nada.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from content_sync.shared.exceptions.base import AppException


@dataclass(frozen=True)
class RecordError:
    """Error asociado a un registro o asociacion del batch."""

    kind: str
    external_id: Optional[str]
    error: str
    message: str
    reference: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        kind: str,
        external_id: Optional[str],
        exc: AppException,
        reference: Optional[str] = None,
    ) -> "RecordError":
        return cls(
            kind=kind,
            external_id=external_id,
            error=type(exc).__name__,
            message=exc.message,
            reference=reference,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "external_id": self.external_id,
            "error": self.error,
            "message": self.message,
        }
        if self.reference is not None:
            data["reference"] = self.reference
        return data


@dataclass
class UpsertResult:
    """Resultado de un batch de upsert para un tipo de entidad."""

    kind: str
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: List[RecordError] = field(default_factory=list)
    changed_ids: List[str] = field(default_factory=list)
    # external_ids cuya escritura fue rechazada por el store (sin duplicados descartados)
    rejected_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return (self.inserted + self.updated) > 0

    def counts(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


@dataclass
class ResolutionResult:
    """Resultado del Relationship Resolver."""

    added: int = 0
    removed: int = 0
    authors_linked: int = 0
    errors: List[RecordError] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return (self.added + self.removed + self.authors_linked) > 0

    def counts(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "removed": self.removed,
            "dangling": len(self.errors),
        }

"""
Excepciones relacionadas con la lógica de dominio.

Errores por registro (NormalizationError, DanglingReferenceError,
ConflictError) se acumulan en el reporte del batch; errores del store
(StoreUnavailableError, StoreBusyError) son fatales para el batch o request
en curso y se reintentan desde el caller.
"""
from typing import Any, Optional

from content_sync.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )


class ValidationException(DomainException):
    """Excepción para errores de validación."""

    def __init__(self, message: str, field: str = None):
        details = {"field": field} if field else None
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )
        self.status_code = 422


class NormalizationError(ValidationException):
    """Registro del export mal formado o incompleto."""

    def __init__(self, message: str, field: str = None, external_id: Optional[str] = None):
        super().__init__(message=message, field=field)
        self.external_id = external_id


class DanglingReferenceError(DomainException):
    """Asociacion o referencia hacia una entidad que no existe en el store."""

    def __init__(self, source_kind: str, source_id: str, target_kind: str, target_id: str):
        super().__init__(
            message=(
                f"{source_kind} '{source_id}' referencia {target_kind} "
                f"'{target_id}' inexistente"
            ),
            error_code="DANGLING_REFERENCE",
            details={
                "source_kind": source_kind,
                "source_id": source_id,
                "target_kind": target_kind,
                "target_id": target_id,
            }
        )
        self.source_id = source_id
        self.target_id = target_id


class ConflictError(DomainException):
    """Violacion de unicidad que no explica el flujo normal de upsert."""

    def __init__(self, entity_name: str, external_id: Any, reason: str):
        super().__init__(
            message=f"{entity_name} con external_id={external_id} en conflicto: {reason}",
            error_code="CONFLICT",
            details={"entity": entity_name, "external_id": str(external_id)}
        )
        self.status_code = 409


class StoreUnavailableError(AppException):
    """El store relacional no responde (conectividad o timeout)."""

    retryable = True

    def __init__(self, message: str = "Store no disponible", details=None):
        super().__init__(
            message=message,
            status_code=503,
            error_code="STORE_UNAVAILABLE",
            details=details
        )


class StoreBusyError(StoreUnavailableError):
    """Pool de conexiones agotado durante el timeout configurado."""

    def __init__(self, message: str = "Store ocupado, reintente", details=None):
        super().__init__(message=message, details=details)
        self.error_code = "STORE_BUSY"


class IngestionBusyError(AppException):
    """Otro batch mantiene el lock de escritura del tipo de contenido."""

    retryable = True

    def __init__(self, kind: str, timeout: float):
        super().__init__(
            message=f"Ya hay una ingesta en curso para '{kind}' (timeout: {timeout}s)",
            status_code=409,
            error_code="INGESTION_BUSY",
            details={"kind": kind, "timeout": timeout}
        )
        self.kind = kind
        self.timeout = timeout


class IngestionAbortedError(AppException):
    """
    Batch abortado por un error fatal.
    Lleva el reporte parcial para que el caller sepa que tipos alcanzaron commit.
    """

    def __init__(self, cause: AppException, report: dict):
        super().__init__(
            message=f"Ingesta abortada: {cause.message}",
            status_code=cause.status_code,
            error_code=cause.error_code,
            details={"report": report}
        )
        self.cause = cause
        self.report = report
        self.retryable = cause.retryable


class InvalidCursorError(DomainException):
    """Cursor de paginacion ilegible o de otra coleccion."""

    def __init__(self, cursor: str):
        super().__init__(
            message=f"Cursor invalido: '{cursor}'",
            error_code="INVALID_CURSOR",
            details={"cursor": cursor}
        )


class InvalidQueryArgumentError(DomainException):
    """Argumento de consulta fuera de rango."""

    def __init__(self, argument: str, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_ARGUMENT",
            details={"argument": argument}
        )

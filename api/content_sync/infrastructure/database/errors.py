"""
Clasificacion de errores del store.

Los errores de SQLAlchemy / drivers se traducen una sola vez a la taxonomia
de la aplicacion; el resto del codigo solo ve AppException.
"""
from typing import Optional

from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
)

from content_sync.shared.exceptions.base import AppException
from content_sync.shared.exceptions.domain import (
    ConflictError,
    StoreBusyError,
    StoreUnavailableError,
)


def is_store_unavailable(exc: BaseException) -> bool:
    """True si el error indica que el store no responde."""
    if isinstance(exc, (PoolTimeoutError, OperationalError, InterfaceError, OSError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def classify_store_error(
    exc: BaseException,
    *,
    entity_name: str = "registro",
    external_id: Optional[str] = None,
) -> AppException:
    """
    Traduce un error del store a la excepcion de dominio correspondiente.

    - IntegrityError / DataError -> ConflictError (fallo por entidad)
    - pool agotado -> StoreBusyError
    - conectividad / conexion invalidada -> StoreUnavailableError
    """
    if isinstance(exc, AppException):
        return exc
    if isinstance(exc, (IntegrityError, DataError)):
        reason = str(exc.orig) if exc.orig is not None else str(exc)
        return ConflictError(entity_name, external_id, reason.splitlines()[0])
    if isinstance(exc, PoolTimeoutError):
        return StoreBusyError(details={"reason": str(exc)})
    if is_store_unavailable(exc):
        return StoreUnavailableError(
            message=f"Store no disponible: {type(exc).__name__}",
            details={"reason": str(exc).splitlines()[0] if str(exc) else type(exc).__name__},
        )
    return StoreUnavailableError(
        message=f"Error inesperado del store: {type(exc).__name__}",
        details={"reason": str(exc)},
    )

"""
Excepciones relacionadas con autenticación y autorización.
"""
from content_sync.shared.exceptions.base import AppException


class UnauthorizedException(AppException):
    """Excepción para acceso no autorizado."""

    def __init__(self, message: str = "No autorizado"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHORIZED"
        )

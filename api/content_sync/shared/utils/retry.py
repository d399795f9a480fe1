"""
Politica de reintentos compartida.

La usan los callers del pipeline (endpoint de ingesta, CLI, endpoint GraphQL).
El motor de upsert y el servicio de consultas nunca reintentan por su cuenta.

Estrategia:
- Solo se reintentan excepciones AppException con `retryable = True`.
- Backoff exponencial con jitter proporcional, acotado por max_backoff.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from content_sync.core.config import Settings
from content_sync.shared.exceptions.base import AppException

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Intentos acotados con backoff exponencial."""

    max_attempts: int = 3
    min_backoff_s: float = 0.5
    max_backoff_s: float = 8.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.RETRY_MAX_ATTEMPTS),
            min_backoff_s=settings.RETRY_MIN_BACKOFF,
            max_backoff_s=settings.RETRY_MAX_BACKOFF,
        )

    def backoff_for(self, attempt: int) -> float:
        """Segundos de espera antes del reintento numero `attempt` (0-based)."""
        base = min(self.max_backoff_s, self.min_backoff_s * (2**attempt))
        return base + (0.15 * base)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operacion",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """
        Ejecuta `operation` reintentando errores recuperables.

        Raises:
            La ultima excepcion si se agotan los intentos, o cualquier
            excepcion no recuperable de inmediato.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except AppException as e:
                if not e.retryable or attempt + 1 >= self.max_attempts:
                    raise
                wait_s = self.backoff_for(attempt)
                logger.warning(
                    f"{description}: intento {attempt + 1}/{self.max_attempts} fallo "
                    f"({e.error_code}). Reintentando en {wait_s:.2f}s"
                )
                await sleep(wait_s)

        # max_attempts >= 1 garantiza que el loop retorna o relanza
        raise RuntimeError("RetryPolicy sin intentos configurados")

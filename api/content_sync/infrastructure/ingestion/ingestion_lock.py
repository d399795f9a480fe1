"""
Lock de escritura por tipo de contenido.

Motivacion:
- La idempotencia del upsert asume un solo escritor por tipo a la vez.
- Dos batches concurrentes del mismo tipo se encolan hasta el timeout y
  luego se rechazan con IngestionBusyError; nunca se intercalan.
- Tipos distintos (posts / categories / tags) no comparten lock.

Dos niveles:
- En proceso: `threading.Lock` por tipo, adquirido via `asyncio.to_thread`
  para no bloquear el event loop.
- Entre procesos (solo PostgreSQL): `pg_try_advisory_xact_lock` dentro de la
  transaccion del tipo; se libera solo al commit/rollback.
"""

from __future__ import annotations

import asyncio
import threading
import zlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.shared.exceptions.domain import IngestionBusyError


# Timeout por defecto para adquirir un lock (en segundos)
DEFAULT_LOCK_TIMEOUT = 30.0

# Namespace de las claves de advisory lock de este servicio
_ADVISORY_NAMESPACE = "content_sync"


def advisory_lock_key(kind: str) -> int:
    """Clave int64 estable para el advisory lock de un tipo."""
    return zlib.crc32(f"{_ADVISORY_NAMESPACE}:{kind}".encode("utf-8"))


class IngestionLockManager:
    """
    Gestor de locks por tipo de contenido.

    Una instancia por proceso (vive en el Container); los tests crean la suya.
    """

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._meta_lock = threading.Lock()

    def _get_or_create_lock(self, kind: str) -> threading.Lock:
        """Obtiene o crea el lock del tipo especificado."""
        with self._meta_lock:
            lock = self._locks.get(kind)
            if lock is None:
                lock = threading.Lock()
                self._locks[kind] = lock
            return lock

    @asynccontextmanager
    async def lock(self, kind: str, timeout: float = None) -> AsyncIterator[None]:
        """
        Context manager async para adquirir el lock de escritura de un tipo.

        Args:
            kind: tipo de contenido (posts, categories, tags, authors, associations)
            timeout: espera maxima en segundos; None usa el default de la instancia.
                     Si es <= 0 se rechaza de inmediato cuando el lock esta tomado.

        Raises:
            IngestionBusyError: si el lock no se obtiene dentro del timeout.

        Ejemplo:
            async with locks.lock("posts"):
                await engine.upsert(session, posts)
        """
        lock = self._get_or_create_lock(kind)
        wait = self._timeout if timeout is None else timeout

        if wait and wait > 0:
            acquired = await asyncio.to_thread(lock.acquire, timeout=wait)
        else:
            acquired = lock.acquire(blocking=False)

        if not acquired:
            logger.warning(f"Timeout adquiriendo lock de ingesta para '{kind}' (timeout: {wait}s)")
            raise IngestionBusyError(kind, wait)

        try:
            yield
        finally:
            lock.release()

    def is_locked(self, kind: str) -> bool:
        """True si algun batch tiene tomado el lock del tipo (para monitoreo)."""
        with self._meta_lock:
            lock = self._locks.get(kind)
        return bool(lock and lock.locked())


async def try_advisory_xact_lock(session: AsyncSession, kind: str) -> bool:
    """
    Evita ejecuciones simultaneas del mismo tipo entre procesos.

    Solo aplica a PostgreSQL; en otros dialectos retorna True (el lock en
    proceso es suficiente).
    """
    if session.get_bind().dialect.name != "postgresql":
        return True
    result = await session.execute(
        text("SELECT pg_try_advisory_xact_lock(:key) AS locked"),
        {"key": advisory_lock_key(kind)},
    )
    return bool(result.scalar())

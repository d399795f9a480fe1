"""
Cache de resultados del Query Service.

- Clave: firma determinista (operacion + argumentos normalizados), nunca el
  texto crudo del request.
- Expiracion por TTL y tamano acotado con desalojo LRU.
- invalidate_all() despues de cada ingesta que cambio algo.

Carrera lectura/escritura: cada put lleva la generacion vista al iniciar la
consulta; si entre medio hubo una invalidacion el put se descarta y el
resultado (potencialmente viejo) nunca entra al cache.
"""

from __future__ import annotations

import copy
import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger


DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 2000


def build_signature(operation: str, arguments: Optional[Mapping[str, Any]] = None) -> str:
    """
    Firma de una consulta.

    Los argumentos en None se descartan, asi `posts(first: 10)` y
    `posts(first: 10, after: null)` comparten entrada.
    """
    normalized = {k: v for k, v in (arguments or {}).items() if v is not None}
    payload = json.dumps(
        {"op": operation, "args": normalized},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class _Entry:
    value: Any
    expires_at: float


@dataclass
class CacheStats:
    """Contadores del cache (para monitoreo)."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0
    discarded_puts: int = 0

    def to_dict(self, size: int, max_entries: int, generation: int) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "size": size,
            "max_entries": max_entries,
            "generation": generation,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "discarded_puts": self.discarded_puts,
        }


class ResultCache:
    """
    Cache TTL + LRU en memoria del proceso.

    Uso:
        generation = cache.generation
        cached = cache.get(signature)
        if cached is None:
            result = await compute()
            cache.put(signature, result, generation=generation)
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._enabled = enabled
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()
        self._generation = 0
        self._stats = CacheStats()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def generation(self) -> int:
        """Contador que avanza en cada invalidate_all()."""
        return self._generation

    def get(self, signature: str) -> Optional[Any]:
        """Retorna una copia del valor cacheado o None (miss / expirado)."""
        if not self._enabled:
            return None
        with self._lock:
            entry = self._entries.get(signature)
            if entry is None:
                self._stats.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[signature]
                self._stats.expirations += 1
                self._stats.misses += 1
                return None
            self._entries.move_to_end(signature)
            self._stats.hits += 1
            return copy.deepcopy(entry.value)

    def put(
        self,
        signature: str,
        value: Any,
        ttl: Optional[float] = None,
        *,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Guarda un resultado.

        Args:
            ttl: segundos de vida; None usa el TTL configurado
            generation: generacion leida antes de calcular el valor; si ya no es
                la actual, el put se descarta

        Returns:
            True si el valor quedo en cache
        """
        if not self._enabled:
            return False
        lifetime = self._ttl if ttl is None else ttl
        if lifetime <= 0:
            return False

        stored = copy.deepcopy(value)
        with self._lock:
            if generation is not None and generation != self._generation:
                self._stats.discarded_puts += 1
                return False
            self._entries[signature] = _Entry(value=stored, expires_at=self._clock() + lifetime)
            self._entries.move_to_end(signature)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
        return True

    def invalidate_all(self) -> int:
        """Vacia el cache y avanza la generacion. Retorna cuantas entradas se borraron."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._generation += 1
            self._stats.invalidations += 1
        logger.info(f"Cache de resultados invalidado ({removed} entradas)")
        return removed

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            data = self._stats.to_dict(len(self._entries), self._max_entries, self._generation)
        data["enabled"] = self._enabled
        data["ttl_seconds"] = self._ttl
        return data

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

"""
Cache de resultados de consultas.
"""
from content_sync.infrastructure.cache.result_cache import ResultCache, build_signature

__all__ = ["ResultCache", "build_signature"]

"""
Pipeline de escritura: export normalizado -> store relacional.

Incluye:
- Upsert idempotente por tipo (una transaccion por tipo)
- Resolucion de asociaciones y autores despues del commit de todos los tipos
- Locks de escritura por tipo (en proceso y advisory lock de Postgres)
"""
from content_sync.infrastructure.ingestion.ingestion_lock import IngestionLockManager
from content_sync.infrastructure.ingestion.relationship_resolver import RelationshipResolver
from content_sync.infrastructure.ingestion.upsert_engine import UpsertEngine

__all__ = ["IngestionLockManager", "RelationshipResolver", "UpsertEngine"]

"""
Entidades del dominio.
"""
from content_sync.domain.entities.content import (
    Author,
    Post,
    TaxonomyTerm,
    compute_payload_hash,
)

__all__ = [
    "Author",
    "Post",
    "TaxonomyTerm",
    "compute_payload_hash",
]

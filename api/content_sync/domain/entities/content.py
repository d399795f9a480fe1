"""
Entidades canonicas del contenido del CMS.

Son el unico formato que ven el Upsert Engine y el Relationship Resolver:
el normalizador es la frontera donde se aplica la politica de
rechazo/coercion sobre los registros crudos del export.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from content_sync.shared.constants.content_constants import PostStatus


def compute_payload_hash(*parts: Optional[str]) -> str:
    """
    Huella de contenido para deteccion de cambios.

    Se colapsan los espacios de cada parte para que cambios de formato del
    origen (saltos de linea, indentacion) no disparen updates espurios.
    """
    normalized = [" ".join((p or "").split()) for p in parts]
    raw = json.dumps(normalized, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Author:
    """Autor referenciado por los posts."""

    external_id: str
    display_name: str
    slug: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def raw_payload_hash(self) -> str:
        return compute_payload_hash(self.display_name, self.slug, self.avatar_url)

    @property
    def modified_at(self) -> Optional[datetime]:
        return None

    def to_row(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "display_name": self.display_name,
            "slug": self.slug,
            "avatar_url": self.avatar_url,
            "raw_payload_hash": self.raw_payload_hash,
        }


@dataclass(frozen=True)
class TaxonomyTerm:
    """Categoria o tag. member_count se deriva de las asociaciones."""

    external_id: str
    slug: str
    name: str
    description: str = ""

    @property
    def raw_payload_hash(self) -> str:
        return compute_payload_hash(self.slug, self.name, self.description)

    @property
    def modified_at(self) -> Optional[datetime]:
        return None

    def to_row(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "raw_payload_hash": self.raw_payload_hash,
        }


@dataclass(frozen=True)
class Post:
    """
    Post canonico.

    category_ids / tag_ids en None significa que el export no trajo la lista
    (las asociaciones existentes no se tocan); una tupla vacia significa que
    el post no tiene terminos en esa taxonomia.
    """

    external_id: str
    slug: str
    title: str
    body: str
    excerpt: str
    status: PostStatus
    published_at: datetime
    modified_at: datetime
    author_ref: Optional[str] = None
    featured_media_ref: Optional[str] = None
    featured_media_url: Optional[str] = None
    category_ids: Optional[Tuple[str, ...]] = None
    tag_ids: Optional[Tuple[str, ...]] = None
    raw_payload_hash: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.raw_payload_hash:
            object.__setattr__(
                self,
                "raw_payload_hash",
                compute_payload_hash(self.title, self.body, self.excerpt, self.status.value),
            )

    def to_row(self) -> Dict[str, Any]:
        """Columnas que escribe el Upsert Engine (author_ref lo resuelve el resolver)."""
        return {
            "external_id": self.external_id,
            "slug": self.slug,
            "title": self.title,
            "body": self.body,
            "excerpt": self.excerpt,
            "status": self.status.value,
            "published_at": self.published_at,
            "modified_at": self.modified_at,
            "featured_media_ref": self.featured_media_ref,
            "featured_media_url": self.featured_media_url,
            "raw_payload_hash": self.raw_payload_hash,
        }

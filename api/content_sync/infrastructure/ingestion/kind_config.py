"""
Configuracion del upsert por tipo de contenido (entidad canonica -> tabla).

Este modulo no realiza I/O: solo define configuracion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from content_sync.infrastructure.database.models import (
    AuthorModel,
    CategoryModel,
    PostModel,
    TagModel,
)
from content_sync.shared.constants.content_constants import ContentKind


@dataclass(frozen=True)
class KindSyncConfig:
    """
    Config de un tipo de contenido -> una tabla.

    compare_modified:
        si True, un registro con modified_at anterior al almacenado nunca
        pisa la fila (data vieja de un export atrasado o un reintento).
    """

    kind: ContentKind
    model: type
    entity_name: str
    compare_modified: bool = False


KIND_CONFIGS: Dict[ContentKind, KindSyncConfig] = {
    ContentKind.AUTHORS: KindSyncConfig(ContentKind.AUTHORS, AuthorModel, "Author"),
    ContentKind.CATEGORIES: KindSyncConfig(ContentKind.CATEGORIES, CategoryModel, "Category"),
    ContentKind.TAGS: KindSyncConfig(ContentKind.TAGS, TagModel, "Tag"),
    ContentKind.POSTS: KindSyncConfig(ContentKind.POSTS, PostModel, "Post", compare_modified=True),
}

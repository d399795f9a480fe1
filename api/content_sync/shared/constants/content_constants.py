"""
Constantes relacionadas con el contenido del CMS.
"""
from enum import Enum


class PostStatus(str, Enum):
    """Estados canonicos de un post."""
    DRAFT = "draft"
    PUBLISH = "publish"
    TRASH = "trash"


class ContentKind(str, Enum):
    """Tipos de entidad que maneja el pipeline de ingesta."""
    AUTHORS = "authors"
    CATEGORIES = "categories"
    TAGS = "tags"
    POSTS = "posts"


# Sinonimos de estado que usa el CMS de origen
STATUS_SYNONYMS = {
    "publish": PostStatus.PUBLISH,
    "published": PostStatus.PUBLISH,
    "draft": PostStatus.DRAFT,
    "pending": PostStatus.DRAFT,
    "future": PostStatus.DRAFT,
    "private": PostStatus.DRAFT,
    "auto-draft": PostStatus.DRAFT,
    "trash": PostStatus.TRASH,
    "trashed": PostStatus.TRASH,
}

# Orden de escritura cuando la ingesta corre de forma secuencial
INGEST_KIND_ORDER = (
    ContentKind.AUTHORS,
    ContentKind.CATEGORIES,
    ContentKind.TAGS,
    ContentKind.POSTS,
)

# Nombre del lock que serializa al Relationship Resolver
ASSOCIATIONS_LOCK_NAME = "associations"

# Longitudes maximas de columnas; el normalizador rechaza lo que no entra
MAX_EXTERNAL_ID_LENGTH = 64
MAX_SLUG_LENGTH = 200
MAX_NAME_LENGTH = 255

"""
Modelos de base de datos (ORM).

external_id es la identidad estable asignada por el CMS de origen y es la PK
de cada tabla. Las filas nunca se borran desde el pipeline: un post que pasa
a `trash` conserva su fila con ese estado.
"""
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from content_sync.infrastructure.database.session import Base
from content_sync.shared.constants.content_constants import (
    MAX_EXTERNAL_ID_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SLUG_LENGTH,
)


class AuthorModel(Base):
    """Modelo de base de datos para autores."""

    __tablename__ = "authors"

    external_id = Column(String(MAX_EXTERNAL_ID_LENGTH), primary_key=True)
    display_name = Column(String(MAX_NAME_LENGTH), nullable=False)
    slug = Column(String(MAX_SLUG_LENGTH), nullable=True)
    avatar_url = Column(Text, nullable=True)
    raw_payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Author(external_id={self.external_id}, name={self.display_name})>"


class CategoryModel(Base):
    """Modelo de base de datos para categorias."""

    __tablename__ = "categories"

    external_id = Column(String(MAX_EXTERNAL_ID_LENGTH), primary_key=True)
    slug = Column(String(MAX_SLUG_LENGTH), nullable=False, unique=True, index=True)
    name = Column(String(MAX_NAME_LENGTH), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    member_count = Column(Integer, nullable=False, default=0)  # derivado de post_categories
    raw_payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Category(external_id={self.external_id}, slug={self.slug})>"


class TagModel(Base):
    """Modelo de base de datos para tags."""

    __tablename__ = "tags"

    external_id = Column(String(MAX_EXTERNAL_ID_LENGTH), primary_key=True)
    slug = Column(String(MAX_SLUG_LENGTH), nullable=False, unique=True, index=True)
    name = Column(String(MAX_NAME_LENGTH), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    member_count = Column(Integer, nullable=False, default=0)  # derivado de post_tags
    raw_payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Tag(external_id={self.external_id}, slug={self.slug})>"


class PostModel(Base):
    """
    Modelo de base de datos para posts.

    Estados posibles:
    - draft: borrador (incluye pending/future/private del origen)
    - publish: visible en el Query Service
    - trash: enviado a papelera en el origen (la fila se conserva)

    author_ref solo lo escribe el Relationship Resolver, cuando el autor existe.
    """

    __tablename__ = "posts"

    external_id = Column(String(MAX_EXTERNAL_ID_LENGTH), primary_key=True)
    slug = Column(String(MAX_SLUG_LENGTH), nullable=False, index=True)
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    excerpt = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="draft", index=True)
    published_at = Column(DateTime(timezone=True), nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=False)
    author_ref = Column(
        String(MAX_EXTERNAL_ID_LENGTH),
        ForeignKey("authors.external_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    featured_media_ref = Column(String(MAX_EXTERNAL_ID_LENGTH), nullable=True)
    featured_media_url = Column(Text, nullable=True)
    raw_payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Slug unico solo entre posts publicados
        Index(
            "uq_posts_published_slug",
            "slug",
            unique=True,
            postgresql_where=text("status = 'publish'"),
            sqlite_where=text("status = 'publish'"),
        ),
        # Orden de paginacion: published_at DESC, external_id DESC
        Index("ix_posts_pagination", "status", "published_at", "external_id"),
    )

    def __repr__(self):
        return f"<Post(external_id={self.external_id}, slug={self.slug}, status={self.status})>"


class PostCategoryModel(Base):
    """Asociacion post <-> categoria."""

    __tablename__ = "post_categories"

    post_external_id = Column(
        String(MAX_EXTERNAL_ID_LENGTH), ForeignKey("posts.external_id", ondelete="CASCADE"), primary_key=True
    )
    category_external_id = Column(
        String(MAX_EXTERNAL_ID_LENGTH), ForeignKey("categories.external_id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PostTagModel(Base):
    """Asociacion post <-> tag."""

    __tablename__ = "post_tags"

    post_external_id = Column(
        String(MAX_EXTERNAL_ID_LENGTH), ForeignKey("posts.external_id", ondelete="CASCADE"), primary_key=True
    )
    tag_external_id = Column(
        String(MAX_EXTERNAL_ID_LENGTH), ForeignKey("tags.external_id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

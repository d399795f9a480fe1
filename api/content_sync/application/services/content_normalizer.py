"""
Normalizador del export del CMS.

Transforma los registros crudos del export (campos anidados `{rendered}`,
metadata libre, ids como int o string) a entidades canonicas tipadas.

Reglas:
- Un registro mal formado nunca aborta el batch: se registra como
  NormalizationError y se omite.
- Estados desconocidos se coercionan a `draft` con warning.
- El hash de contenido se calcula sobre los campos ya normalizados.
"""
from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from content_sync.domain.entities.content import Author, Post, TaxonomyTerm
from content_sync.domain.entities.results import RecordError
from content_sync.shared.constants.content_constants import (
    MAX_EXTERNAL_ID_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SLUG_LENGTH,
    STATUS_SYNONYMS,
    ContentKind,
    PostStatus,
)
from content_sync.shared.exceptions.domain import NormalizationError
from content_sync.shared.utils.datetime_utils import parse_timestamp


@dataclass
class RecordOutcome:
    """Resultado de normalizar un registro individual."""

    kind: str
    index: int
    external_id: Optional[str]
    entity: Any = None
    error: Optional[NormalizationError] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_record_error(self) -> Optional[RecordError]:
        if self.error is None:
            return None
        return RecordError.from_exception(self.kind, self.external_id, self.error)


@dataclass
class NormalizedBatch:
    """
    Batch listo para el Upsert Engine.

    outcomes conserva un resultado por registro de entrada, en orden.
    """

    posts: List[Post] = field(default_factory=list)
    categories: List[TaxonomyTerm] = field(default_factory=list)
    tags: List[TaxonomyTerm] = field(default_factory=list)
    authors: List[Author] = field(default_factory=list)
    outcomes: List[RecordOutcome] = field(default_factory=list)

    def entities_for(self, kind: ContentKind) -> list:
        return {
            ContentKind.POSTS: self.posts,
            ContentKind.CATEGORIES: self.categories,
            ContentKind.TAGS: self.tags,
            ContentKind.AUTHORS: self.authors,
        }[kind]

    def errors_for(self, kind: ContentKind) -> List[RecordError]:
        return [
            o.to_record_error() for o in self.outcomes
            if o.kind == kind.value and not o.ok
        ]

    @property
    def errors(self) -> List[RecordError]:
        return [o.to_record_error() for o in self.outcomes if not o.ok]


def flatten_rendered(value: Any) -> str:
    """
    Aplana un campo de texto del CMS a string.

    Acepta `{"rendered": "..."}`, `{"raw": "..."}`, un string plano o None.
    """
    if value is None:
        return ""
    if isinstance(value, Mapping):
        inner = value.get("rendered")
        if inner is None:
            inner = value.get("raw")
        return "" if inner is None else str(inner).strip()
    return str(value).strip()


def normalize_slug(value: Any) -> str:
    """Forma canonica de un slug: sin espacios alrededor y en minusculas."""
    return flatten_rendered(value).lower()


def _check_length(value: Optional[str], limit: int, field_name: str) -> Optional[str]:
    if value is not None and len(value) > limit:
        raise NormalizationError(
            f"'{field_name}' excede {limit} caracteres ({len(value)})", field=field_name
        )
    return value


def _coerce_id(value: Any) -> Optional[str]:
    """Normaliza un id del origen a string; bool y colecciones no son ids."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _external_id(record: Mapping[str, Any]) -> Optional[str]:
    raw = record.get("external_id")
    if raw is None:
        raw = record.get("id")
    return _coerce_id(raw)


class ContentNormalizer:
    """
    Normalizador de batches del export.

    Uso:
        normalizer = ContentNormalizer()
        batch = normalizer.normalize_batch(raw_export)
        for error in batch.errors:
            ...
    """

    def normalize_batch(self, raw: Mapping[str, Any]) -> NormalizedBatch:
        """
        Normaliza un export completo.

        Args:
            raw: dict con arrays `posts`, `categories`, `tags` y opcionalmente `authors`

        Returns:
            NormalizedBatch con entidades canonicas y un outcome por registro
        """
        batch = NormalizedBatch()

        for outcome in self._normalize_each(ContentKind.CATEGORIES, raw.get("categories"), self.normalize_term):
            batch.outcomes.append(outcome)
            if outcome.ok:
                batch.categories.append(outcome.entity)

        for outcome in self._normalize_each(ContentKind.TAGS, raw.get("tags"), self.normalize_term):
            batch.outcomes.append(outcome)
            if outcome.ok:
                batch.tags.append(outcome.entity)

        listed_authors: Dict[str, Author] = {}
        for outcome in self._normalize_each(ContentKind.AUTHORS, raw.get("authors"), self.normalize_author):
            batch.outcomes.append(outcome)
            if outcome.ok:
                batch.authors.append(outcome.entity)
                listed_authors[outcome.entity.external_id] = outcome.entity

        embedded_authors: Dict[str, Author] = {}
        for outcome in self._normalize_each(ContentKind.POSTS, raw.get("posts"), self.normalize_post):
            batch.outcomes.append(outcome)
            if not outcome.ok:
                continue
            post, embedded = outcome.entity
            outcome.entity = post
            batch.posts.append(post)
            # Un autor listado explicitamente tiene prioridad sobre el embebido
            if embedded and embedded.external_id not in listed_authors:
                embedded_authors[embedded.external_id] = embedded

        batch.authors.extend(embedded_authors.values())

        failed = sum(1 for o in batch.outcomes if not o.ok)
        logger.info(
            f"Normalizacion completada: posts={len(batch.posts)}, "
            f"categories={len(batch.categories)}, tags={len(batch.tags)}, "
            f"authors={len(batch.authors)}, rechazados={failed}"
        )
        return batch

    def _normalize_each(self, kind: ContentKind, records: Any, fn) -> Iterable[RecordOutcome]:
        if records is None:
            return
        if not isinstance(records, list):
            outcome = RecordOutcome(kind=kind.value, index=-1, external_id=None)
            outcome.error = NormalizationError(
                f"'{kind.value}' debe ser una lista", field=kind.value
            )
            yield outcome
            return

        for index, record in enumerate(records):
            outcome = RecordOutcome(kind=kind.value, index=index, external_id=None)
            if not isinstance(record, Mapping):
                outcome.error = NormalizationError(
                    f"Registro {kind.value}[{index}] no es un objeto"
                )
            else:
                outcome.external_id = _external_id(record)
                try:
                    outcome.entity = fn(record, outcome.warnings)
                except NormalizationError as e:
                    e.external_id = outcome.external_id
                    outcome.error = e

            if outcome.error is not None:
                logger.warning(
                    f"Registro {kind.value}[{index}] rechazado "
                    f"(external_id={outcome.external_id}): {outcome.error.message}"
                )
            for warning in outcome.warnings:
                logger.warning(f"{kind.value}[{index}] (external_id={outcome.external_id}): {warning}")
            yield outcome

    # ------------------------------------------------------------------
    # Normalizacion por tipo
    # ------------------------------------------------------------------

    def normalize_term(self, record: Mapping[str, Any], warnings: List[str]) -> TaxonomyTerm:
        """Normaliza una categoria o tag."""
        external_id = self._require_external_id(record)
        slug = self._require_slug(record)
        name = html.unescape(flatten_rendered(record.get("name")))
        if not name:
            warnings.append("Termino sin nombre; se usa el slug")
            name = slug
        _check_length(name, MAX_NAME_LENGTH, "name")
        return TaxonomyTerm(
            external_id=external_id,
            slug=slug,
            name=name,
            description=flatten_rendered(record.get("description")),
        )

    def normalize_author(self, record: Mapping[str, Any], warnings: List[str]) -> Author:
        """Normaliza un autor listado en el array `authors`."""
        external_id = self._require_external_id(record)
        display_name = html.unescape(flatten_rendered(record.get("display_name") or record.get("name")))
        if not display_name:
            raise NormalizationError("Autor sin nombre", field="name")
        _check_length(display_name, MAX_NAME_LENGTH, "display_name")
        slug = flatten_rendered(record.get("slug") or record.get("user_nicename")) or None
        _check_length(slug, MAX_SLUG_LENGTH, "slug")
        avatar = record.get("avatar_url")
        sizes = record.get("avatar_urls")
        if avatar is None and isinstance(sizes, Mapping) and sizes:
            # El CMS entrega avatares por tamano; se usa el mas grande
            largest = max(sizes, key=lambda k: int(k) if str(k).isdigit() else 0)
            avatar = sizes[largest]
        return Author(
            external_id=external_id,
            display_name=display_name,
            slug=slug,
            avatar_url=flatten_rendered(avatar) or None,
        )

    def normalize_post(
        self, record: Mapping[str, Any], warnings: List[str]
    ) -> Tuple[Post, Optional[Author]]:
        """
        Normaliza un post.

        Returns:
            (Post, Author embebido en `author_info` o None)
        """
        external_id = self._require_external_id(record)
        slug = self._require_slug(record)

        published_at = self._timestamp(record, "date_gmt", "date", required=True)
        modified_at = self._timestamp(record, "modified_gmt", "modified", required=False) or published_at

        author_ref, embedded_author = self._author_reference(record, warnings)

        featured_ref = _coerce_id(record.get("featured_media"))
        if featured_ref == "0":
            # El CMS usa 0 para "sin imagen destacada"
            featured_ref = None
        _check_length(featured_ref, MAX_EXTERNAL_ID_LENGTH, "featured_media")

        post = Post(
            external_id=external_id,
            slug=slug,
            title=html.unescape(flatten_rendered(record.get("title"))),
            body=flatten_rendered(record.get("content")),
            excerpt=flatten_rendered(record.get("excerpt")),
            status=self._coerce_status(record.get("status"), warnings),
            published_at=published_at,
            modified_at=modified_at,
            author_ref=author_ref,
            featured_media_ref=featured_ref,
            featured_media_url=flatten_rendered(record.get("featured_media_url")) or None,
            category_ids=self._id_list(record, "categories"),
            tag_ids=self._id_list(record, "tags"),
        )
        return post, embedded_author

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_external_id(record: Mapping[str, Any]) -> str:
        external_id = _external_id(record)
        if external_id is None:
            raise NormalizationError("Falta external_id", field="external_id")
        return _check_length(external_id, MAX_EXTERNAL_ID_LENGTH, "external_id")

    @staticmethod
    def _require_slug(record: Mapping[str, Any]) -> str:
        slug = normalize_slug(record.get("slug"))
        if not slug:
            raise NormalizationError("Slug vacio", field="slug")
        return _check_length(slug, MAX_SLUG_LENGTH, "slug")

    @staticmethod
    def _timestamp(record: Mapping[str, Any], *keys: str, required: bool):
        for key in keys:
            value = record.get(key)
            if value in (None, ""):
                continue
            try:
                return parse_timestamp(value)
            except ValueError as e:
                raise NormalizationError(
                    f"Timestamp invalido en '{key}': {value!r}", field=key
                ) from e
        if required:
            raise NormalizationError(f"Falta timestamp '{keys[-1]}'", field=keys[-1])
        return None

    @staticmethod
    def _coerce_status(raw: Any, warnings: List[str]) -> PostStatus:
        key = str(raw).strip().lower() if raw is not None else ""
        status = STATUS_SYNONYMS.get(key)
        if status is None:
            warnings.append(f"Estado desconocido {raw!r}; se usa 'draft'")
            return PostStatus.DRAFT
        return status

    @staticmethod
    def _id_list(record: Mapping[str, Any], key: str) -> Optional[Tuple[str, ...]]:
        if key not in record or record[key] is None:
            return None
        raw = record[key]
        if not isinstance(raw, list):
            raise NormalizationError(f"'{key}' debe ser una lista de ids", field=key)

        ids: List[str] = []
        for item in raw:
            value = _coerce_id(item.get("id") if isinstance(item, Mapping) else item)
            if value is None:
                raise NormalizationError(f"Id invalido en '{key}': {item!r}", field=key)
            if value not in ids:
                ids.append(value)
        return tuple(ids)

    @staticmethod
    def _author_reference(
        record: Mapping[str, Any], warnings: List[str]
    ) -> Tuple[Optional[str], Optional[Author]]:
        raw = record.get("author")
        if isinstance(raw, Mapping):
            author_ref = _coerce_id(raw.get("id"))
            info: Any = raw
        else:
            author_ref = _coerce_id(raw)
            info = record.get("author_info")

        if raw not in (None, "") and author_ref is None:
            warnings.append(f"Referencia de autor invalida {raw!r}; se ignora")
        _check_length(author_ref, MAX_EXTERNAL_ID_LENGTH, "author")
        if author_ref is None or not isinstance(info, Mapping):
            return author_ref, None

        name = html.unescape(flatten_rendered(info.get("display_name") or info.get("name")))
        slug = flatten_rendered(info.get("user_nicename") or info.get("slug")) or None
        if not name:
            return author_ref, None
        if len(name) > MAX_NAME_LENGTH or (slug and len(slug) > MAX_SLUG_LENGTH):
            warnings.append("Autor embebido con campos demasiado largos; se ignora")
            return author_ref, None
        return author_ref, Author(
            external_id=author_ref,
            display_name=name,
            slug=slug,
            avatar_url=flatten_rendered(info.get("avatar_url")) or None,
        )

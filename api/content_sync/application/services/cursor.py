"""
Cursores opacos de paginacion keyset.

Un cursor codifica la coleccion y la clave de orden del ultimo elemento
visto, nunca un offset: una insercion entre paginas no duplica ni salta filas
para un cliente que avanza hacia adelante.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from content_sync.shared.exceptions.domain import InvalidCursorError
from content_sync.shared.utils.datetime_utils import ensure_utc, parse_timestamp


@dataclass(frozen=True)
class PostCursor:
    """Posicion en posts: published_at DESC, external_id DESC."""

    published_at: datetime
    external_id: str


@dataclass(frozen=True)
class TermCursor:
    """Posicion en categorias/tags: name ASC, external_id ASC."""

    name: str
    external_id: str


def _encode(payload: dict) -> str:
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode(cursor: str, collection: str) -> list:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(cursor) from e

    if not isinstance(payload, dict) or payload.get("c") != collection:
        raise InvalidCursorError(cursor)
    key = payload.get("k")
    if not isinstance(key, list) or len(key) != 2 or not all(isinstance(v, str) for v in key):
        raise InvalidCursorError(cursor)
    return key


def encode_post_cursor(published_at: datetime, external_id: str) -> str:
    return _encode({"c": "posts", "k": [ensure_utc(published_at).isoformat(), external_id]})


def decode_post_cursor(cursor: Optional[str]) -> Optional[PostCursor]:
    if cursor is None:
        return None
    published_raw, external_id = _decode(cursor, "posts")
    try:
        published_at = parse_timestamp(published_raw)
    except ValueError as e:
        raise InvalidCursorError(cursor) from e
    if published_at is None:
        raise InvalidCursorError(cursor)
    return PostCursor(published_at=published_at, external_id=external_id)


def encode_term_cursor(collection: str, name: str, external_id: str) -> str:
    return _encode({"c": collection, "k": [name, external_id]})


def decode_term_cursor(collection: str, cursor: Optional[str]) -> Optional[TermCursor]:
    if cursor is None:
        return None
    name, external_id = _decode(cursor, collection)
    return TermCursor(name=name, external_id=external_id)

"""
Utilidades para manejo de fechas y horas.

Todas las fechas que entran al store se normalizan a UTC aware.
"""
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Un datetime naive se interpreta como UTC: el export del CMS entrega
    `date_gmt` sin zona, y SQLite devuelve las columnas sin tzinfo.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Convierte un timestamp ISO 8601 del export a datetime UTC.

    Returns:
        datetime UTC, o None si el valor viene vacio

    Raises:
        ValueError: si el valor no es parseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Timestamp con tipo no soportado: {type(value).__name__}")

    raw = value.strip()
    if not raw:
        return None
    # fromisoformat no acepta 'Z' en versiones anteriores a 3.11
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Serializa un datetime a ISO 8601 en UTC (None se conserva)."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()

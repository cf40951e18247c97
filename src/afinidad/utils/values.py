"""
Conversión tolerante de valores crudos del store.

Las filas llegan como dicts sin tipar; un valor malformado se trata
como "no declarado" (None) en lugar de fallar.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except (ValueError, TypeError):
        return None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "yes", "1"):
            return True
        if lowered in ("false", "f", "no", "0"):
            return False
    return None


def to_str_list(value: Any) -> Optional[list[str]]:
    """Lista de strings no vacíos; None si el valor no es una lista."""
    if not isinstance(value, (list, tuple)):
        return None
    return [str(item).strip() for item in value if isinstance(item, str) and item.strip()]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parsea timestamps ISO de Postgres (con 'Z' o con offset)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

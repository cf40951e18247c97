"""
Notificaciones y contadores de no leídos.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from afinidad.utils.values import utcnow


class NotificationKind(str, Enum):
    LIKE = "like"
    SUPER_LIKE = "super_like"
    MATCH = "match"
    MESSAGE = "message"


class Notification(BaseModel):
    """Notificación tipada generada a partir de un evento del change-stream."""

    id: str = Field(..., description="'<kind>-<record_id>'")
    kind: NotificationKind
    record_id: str = Field(..., description="Fila que originó la notificación")
    source_identity: str = Field(..., description="Quién generó el evento")
    title: str
    body: str
    avatar_url: Optional[str] = None
    payload: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    read: bool = False


class UnreadCounters(BaseModel):
    """Espejo de la verdad del store; nunca negativo."""

    likes: int = Field(0, ge=0)
    matches: int = Field(0, ge=0)
    messages: int = Field(0, ge=0)

    @classmethod
    def clamped(cls, likes: int, matches: int, messages: int) -> "UnreadCounters":
        return cls(likes=max(0, likes), matches=max(0, matches), messages=max(0, messages))

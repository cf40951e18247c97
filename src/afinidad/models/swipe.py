"""
Eventos de swipe.

Cada swipe se aplica primero en memoria (commit optimista) y después se
persiste en forma asíncrona. El evento lleva el estado de esa escritura.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from afinidad.models.candidate import TargetType
from afinidad.utils.values import utcnow


class SwipeDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    SUPER = "super"

    @property
    def is_positive(self) -> bool:
        return self is not SwipeDirection.LEFT


class WriteStatus(str, Enum):
    PENDING = "pending"  # en cola, todavía no enviado
    IN_FLIGHT = "in_flight"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SwipeEvent(BaseModel):
    """Swipe registrado en el log de la sesión."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    target_id: str = Field(..., description="Perfil o publicación swipeada")
    recipient_id: str = Field(..., description="Identidad que recibe el like")
    direction: SwipeDirection
    target_type: TargetType
    timestamp: datetime = Field(default_factory=utcnow)
    session_id: str

    # Estado de la escritura durable
    status: WriteStatus = WriteStatus.PENDING
    attempts: int = 0
    error: Optional[str] = None
    record_id: Optional[str] = Field(None, description="ID de la fila creada en likes")
    finalized: bool = Field(
        False, description="Inmutable: ya no se puede deshacer"
    )

    def to_db_dict(self, user_id: str) -> dict:
        """Fila para la tabla likes."""
        return {
            "user_id": user_id,
            "target_id": self.recipient_id,
            "listing_id": self.target_id if self.target_type is TargetType.LISTING else None,
            "target_type": self.target_type.value,
            "direction": self.direction.value,
            "session_id": self.session_id,
            "created_at": self.timestamp.isoformat(),
        }

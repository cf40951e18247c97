"""
Entidades externas leídas del change-stream.

Likes, matches y mensajes son append-only/update-only desde el punto de
vista del motor. Se validan en el borde de la suscripción.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from afinidad.models.swipe import SwipeDirection


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if value is not None else value


class LikeRecord(_Record):
    user_id: str = Field(..., description="Quién swipeó")
    target_id: str = Field(..., description="Identidad que recibe el like")
    listing_id: Optional[str] = None
    direction: SwipeDirection = SwipeDirection.RIGHT
    created_at: Optional[datetime] = None


class MatchRecord(_Record):
    seeker_id: str
    offerer_id: str
    listing_id: Optional[str] = None
    is_mutual: bool = False

    def involves(self, identity_id: str) -> bool:
        return identity_id in (self.seeker_id, self.offerer_id)

    def counterpart_of(self, identity_id: str) -> str:
        return self.offerer_id if identity_id == self.seeker_id else self.seeker_id


class Conversation(_Record):
    seeker_id: str
    offerer_id: str

    def involves(self, identity_id: str) -> bool:
        return identity_id in (self.seeker_id, self.offerer_id)


class MessageRecord(_Record):
    conversation_id: str
    sender_id: str
    body: str = Field("", alias="message_text")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

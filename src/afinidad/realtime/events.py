"""
Eventos tipados del change-stream.

Los payloads crudos del transporte se decodifican y validan en el borde
de la suscripción en una variante cerrada:

    ChangeEvent = LikeInserted | MatchChanged | MessageInserted
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from afinidad.config import LIKES_TABLE, MATCHES_TABLE, MESSAGES_TABLE
from afinidad.database import RowChange
from afinidad.models import LikeRecord, MatchRecord, MessageRecord
from afinidad.utils.values import to_bool

logger = structlog.get_logger()


@dataclass(frozen=True)
class LikeInserted:
    like: LikeRecord


@dataclass(frozen=True)
class MatchChanged:
    match: MatchRecord
    was_mutual: Optional[bool]  # None si el transporte no mandó la fila vieja

    @property
    def became_mutual(self) -> bool:
        """
        True si este cambio es la transición false -> true.

        Un INSERT ya mutuo cuenta como transición (no había fila antes).
        """
        return self.match.is_mutual and not self.was_mutual


@dataclass(frozen=True)
class MessageInserted:
    message: MessageRecord


ChangeEvent = Union[LikeInserted, MatchChanged, MessageInserted]


def decode_change(change: RowChange) -> Optional[ChangeEvent]:
    """
    Convierte un RowChange en un ChangeEvent.

    Returns:
        El evento tipado, o None si la fila no se pudo validar
    """
    try:
        if change.table == LIKES_TABLE and change.event_type == "INSERT":
            return LikeInserted(LikeRecord(**change.new))
        if change.table == MATCHES_TABLE and change.event_type in ("INSERT", "UPDATE"):
            was_mutual: Optional[bool] = False
            if change.event_type == "UPDATE":
                was_mutual = to_bool((change.old or {}).get("is_mutual"))
            return MatchChanged(MatchRecord(**change.new), was_mutual)
        if change.table == MESSAGES_TABLE and change.event_type == "INSERT":
            return MessageInserted(MessageRecord(**change.new))
    except (ValidationError, TypeError) as e:
        logger.warning(
            "Evento realtime inválido",
            table=change.table,
            event=change.event_type,
            error=str(e),
        )
        return None

    logger.debug("Evento realtime ignorado", table=change.table, event=change.event_type)
    return None

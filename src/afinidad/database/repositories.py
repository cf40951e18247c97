"""
Repositorios sobre el store.

Cada repositorio maneja una tabla/entidad específica y traduce entre
filas crudas y modelos del motor.
"""

from datetime import datetime
from typing import Optional

import structlog

from afinidad.config import (
    CLIENT_PREFERENCES_TABLE,
    CONVERSATION_READS_TABLE,
    CONVERSATIONS_TABLE,
    LIKES_TABLE,
    LISTINGS_TABLE,
    MATCHES_TABLE,
    MESSAGES_TABLE,
    OWNER_PREFERENCES_TABLE,
    PROFILES_TABLE,
    USER_ROLES_TABLE,
)
from afinidad.database.store import BaseStore
from afinidad.models import (
    Conversation,
    Identity,
    MatchRecord,
    Preferences,
    Role,
    SwipeDirection,
    SwipeEvent,
    TargetType,
    preferences_for,
)
from afinidad.utils.values import parse_timestamp, utcnow

logger = structlog.get_logger()

POSITIVE_DIRECTIONS = [SwipeDirection.RIGHT.value, SwipeDirection.SUPER.value]


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, store: BaseStore):
        self._store = store

    @property
    def store(self) -> BaseStore:
        return self._store


class ProfileRepository(BaseRepository):
    """Perfiles públicos y roles."""

    TABLE = PROFILES_TABLE

    async def get_display(self, user_id: str) -> Optional[dict]:
        """Nombre y avatar para mostrar en una notificación."""
        rows = await self.store.select(
            self.TABLE,
            filters=[("id", "eq", user_id)],
            limit=1,
            columns="id, full_name, avatar_url",
        )
        return rows[0] if rows else None

    async def get_role(self, user_id: str) -> Optional[Role]:
        rows = await self.store.select(
            USER_ROLES_TABLE, filters=[("user_id", "eq", user_id)], limit=1
        )
        return Role.parse(rows[0].get("role")) if rows else None


class PreferencesRepository(BaseRepository):
    """Preferencias por rol: owner_client_preferences o client_filter_preferences."""

    async def get_for(self, identity: Identity) -> Optional[Preferences]:
        table = (
            OWNER_PREFERENCES_TABLE
            if identity.role is Role.OFFERER
            else CLIENT_PREFERENCES_TABLE
        )
        rows = await self.store.select(
            table, filters=[("user_id", "eq", identity.id)], limit=1
        )
        return preferences_for(identity.role, rows[0] if rows else None)


class CandidateRepository(BaseRepository):
    """Perfiles de inquilinos (para dueños) o publicaciones activas (para inquilinos)."""

    async def fetch_page(self, identity: Identity, offset: int, limit: int) -> list[dict]:
        """
        Obtiene una página cruda de candidatos en el orden nativo del store.

        Returns:
            Hasta `limit` filas a partir de `offset`
        """
        if identity.role is Role.OFFERER:
            table = PROFILES_TABLE
            filters = [("role", "eq", Role.SEEKER.value), ("id", "neq", identity.id)]
        else:
            table = LISTINGS_TABLE
            filters = [("status", "eq", "active"), ("owner_id", "neq", identity.id)]
        return await self.store.select(
            table, filters=filters, order=("id", False), limit=limit, offset=offset
        )


class LikeRepository(BaseRepository):
    """Repositorio para likes (swipes persistidos)."""

    TABLE = LIKES_TABLE

    async def create(self, event: SwipeEvent, user_id: str) -> dict:
        """Registra un swipe."""
        row = await self.store.insert(self.TABLE, event.to_db_dict(user_id))
        logger.info(
            "Like registrado",
            user_id=user_id,
            target_id=event.target_id,
            direction=event.direction.value,
        )
        return row

    async def remove(self, event: SwipeEvent, user_id: str) -> list[dict]:
        """Borra el like de un swipe deshecho."""
        if event.record_id:
            filters = [("id", "eq", event.record_id)]
        else:
            filters = [
                ("user_id", "eq", user_id),
                ("target_id", "eq", event.recipient_id),
                ("session_id", "eq", event.session_id),
            ]
            if event.target_type is TargetType.LISTING:
                filters.append(("listing_id", "eq", event.target_id))
        rows = await self.store.delete(self.TABLE, filters)
        logger.info("Like revertido", user_id=user_id, target_id=event.target_id)
        return rows

    async def find_reciprocal(self, user_id: str, target_id: str) -> Optional[dict]:
        """Like positivo de target_id hacia user_id, si existe."""
        rows = await self.store.select(
            self.TABLE,
            filters=[
                ("user_id", "eq", target_id),
                ("target_id", "eq", user_id),
                ("direction", "in", POSITIVE_DIRECTIONS),
            ],
            limit=1,
        )
        return rows[0] if rows else None

    async def count_received(self, identity_id: str) -> int:
        return await self.store.count(
            self.TABLE,
            filters=[
                ("target_id", "eq", identity_id),
                ("direction", "in", POSITIVE_DIRECTIONS),
            ],
        )


class MatchRepository(BaseRepository):
    """Repositorio para matches."""

    TABLE = MATCHES_TABLE

    async def get_pair(
        self, seeker_id: str, offerer_id: str, listing_id: Optional[str] = None
    ) -> Optional[MatchRecord]:
        filters = [("seeker_id", "eq", seeker_id), ("offerer_id", "eq", offerer_id)]
        if listing_id:
            filters.append(("listing_id", "eq", listing_id))
        rows = await self.store.select(self.TABLE, filters=filters, limit=1)
        return MatchRecord(**rows[0]) if rows else None

    async def ensure_mutual(
        self, seeker_id: str, offerer_id: str, listing_id: Optional[str] = None
    ) -> MatchRecord:
        """
        Marca el par como match mutuo.

        Si la fila existe se actualiza is_mutual (la transición false -> true
        ocurre una sola vez); si no existe se crea ya mutua.
        """
        existing = await self.get_pair(seeker_id, offerer_id, listing_id)
        if existing and existing.is_mutual:
            return existing
        if existing:
            rows = await self.store.update(
                self.TABLE, [("id", "eq", existing.id)], {"is_mutual": True}
            )
            match = MatchRecord(**rows[0]) if rows else existing
        else:
            row = await self.store.insert(
                self.TABLE,
                {
                    "seeker_id": seeker_id,
                    "offerer_id": offerer_id,
                    "listing_id": listing_id,
                    "is_mutual": True,
                },
            )
            match = MatchRecord(**row)
        logger.info("Match mutuo", seeker_id=seeker_id, offerer_id=offerer_id)
        return match

    async def count_mutual(self, identity_id: str) -> int:
        # Nadie es seeker y offerer del mismo match, así que las cuentas no se solapan
        as_seeker = await self.store.count(
            self.TABLE,
            filters=[("seeker_id", "eq", identity_id), ("is_mutual", "eq", True)],
        )
        as_offerer = await self.store.count(
            self.TABLE,
            filters=[("offerer_id", "eq", identity_id), ("is_mutual", "eq", True)],
        )
        return as_seeker + as_offerer


class ConversationRepository(BaseRepository):
    """Repositorio para conversaciones."""

    TABLE = CONVERSATIONS_TABLE

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        rows = await self.store.select(
            self.TABLE, filters=[("id", "eq", conversation_id)], limit=1
        )
        return Conversation(**rows[0]) if rows else None

    async def list_for(self, identity_id: str) -> list[Conversation]:
        rows = await self.store.select(
            self.TABLE, filters=[("seeker_id", "eq", identity_id)]
        )
        rows += await self.store.select(
            self.TABLE, filters=[("offerer_id", "eq", identity_id)]
        )
        return [Conversation(**row) for row in rows]


class MessageRepository(BaseRepository):
    """Repositorio para mensajes de conversaciones."""

    TABLE = MESSAGES_TABLE

    async def count_unread(
        self, conversation_id: str, identity_id: str, since: Optional[datetime]
    ) -> int:
        """Mensajes de la contraparte posteriores a la marca de lectura."""
        filters = [
            ("conversation_id", "eq", conversation_id),
            ("sender_id", "neq", identity_id),
        ]
        if since is not None:
            filters.append(("created_at", "gt", since.isoformat()))
        return await self.store.count(self.TABLE, filters=filters)


class ReadWatermarkRepository(BaseRepository):
    """Marca de lectura por conversación (hasta dónde leyó cada usuario)."""

    TABLE = CONVERSATION_READS_TABLE

    async def get_for(self, identity_id: str) -> dict[str, datetime]:
        rows = await self.store.select(
            self.TABLE, filters=[("user_id", "eq", identity_id)]
        )
        watermarks = {}
        for row in rows:
            read_at = parse_timestamp(row.get("last_read_at"))
            if read_at is not None:
                watermarks[str(row["conversation_id"])] = read_at
        return watermarks

    async def mark_read(
        self, conversation_id: str, identity_id: str, read_at: Optional[datetime] = None
    ) -> dict:
        row = {
            "conversation_id": conversation_id,
            "user_id": identity_id,
            "last_read_at": (read_at or utcnow()).isoformat(),
        }
        return await self.store.upsert(
            self.TABLE, row, on_conflict="conversation_id,user_id"
        )

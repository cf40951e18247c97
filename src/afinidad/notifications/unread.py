"""
Contadores de no leídos.

Los contadores son un espejo de lo que dice el store: nunca se
incrementan localmente. Cada evento relevante sólo marca que hay que
recontar, y una ráfaga de eventos dentro de la ventana de debounce
termina en una única lectura.
"""

import asyncio
from typing import Callable, Optional

import structlog

from afinidad.config import Settings, get_settings
from afinidad.database import (
    BaseStore,
    ConversationRepository,
    LikeRepository,
    MatchRepository,
    MessageRepository,
    ReadWatermarkRepository,
)
from afinidad.errors import StoreError
from afinidad.models import Identity, UnreadCounters
from afinidad.utils import CoalescingTrigger
from afinidad.utils.values import utcnow

logger = structlog.get_logger()


class UnreadAggregator:
    """Espejo de likes recibidos, matches mutuos y mensajes sin leer."""

    def __init__(
        self,
        identity: Identity,
        store: BaseStore,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.like_repo = LikeRepository(store)
        self.match_repo = MatchRepository(store)
        self.conversation_repo = ConversationRepository(store)
        self.message_repo = MessageRepository(store)
        self.watermark_repo = ReadWatermarkRepository(store)

        self.counts = UnreadCounters()
        self.last_error: Optional[StoreError] = None
        self._trigger = CoalescingTrigger(
            self.refresh, self.settings.unread_debounce_seconds, name="unread"
        )
        self._issued = 0
        self._applied = 0
        self._reconcile_task: Optional[asyncio.Task] = None
        self._listeners: list[Callable[[UnreadCounters], None]] = []

    @property
    def reads(self) -> int:
        """Recuentos disparados por invalidate (para diagnóstico)."""
        return self._trigger.runs

    def on_change(self, listener: Callable[[UnreadCounters], None]):
        self._listeners.append(listener)

    def get_counts(self) -> UnreadCounters:
        return self.counts

    async def start(self):
        """Primer recuento y, si está configurado, reconciliación periódica."""
        await self.refresh()
        interval = self.settings.unread_reconcile_interval
        if interval and self._reconcile_task is None:
            self._reconcile_task = asyncio.get_running_loop().create_task(
                self._reconcile_loop(interval)
            )

    def invalidate(self, *_args):
        """Marca los contadores como viejos. Acepta cualquier argumento para usarse como listener."""
        self._trigger.fire()

    async def flush(self):
        await self._trigger.flush()

    async def refresh(self) -> UnreadCounters:
        """
        Recuenta contra el store.

        Si dos recuentos se solapan gana el último que se pidió. Si falla,
        se conservan los valores anteriores.
        """
        self._issued += 1
        ticket = self._issued
        try:
            counts = await self._count()
        except StoreError as e:
            self.last_error = e
            logger.warning(
                "Error recontando no leídos",
                user_id=self.identity.id,
                error=str(e),
            )
            return self.counts

        if ticket < self._applied:
            return self.counts
        self._applied = ticket
        self.last_error = None

        if counts != self.counts:
            self.counts = counts
            logger.debug(
                "Contadores actualizados",
                user_id=self.identity.id,
                likes=counts.likes,
                matches=counts.matches,
                messages=counts.messages,
            )
            for listener in self._listeners:
                try:
                    listener(counts)
                except Exception as e:
                    logger.warning("Error en listener de contadores", error=str(e))
        return self.counts

    async def _count(self) -> UnreadCounters:
        likes = await self.like_repo.count_received(self.identity.id)
        matches = await self.match_repo.count_mutual(self.identity.id)

        conversations = await self.conversation_repo.list_for(self.identity.id)
        watermarks = await self.watermark_repo.get_for(self.identity.id)
        messages = 0
        for conversation in conversations:
            messages += await self.message_repo.count_unread(
                conversation.id, self.identity.id, watermarks.get(conversation.id)
            )
        return UnreadCounters.clamped(likes, matches, messages)

    async def mark_conversation_read(self, conversation_id: str):
        """Avanza la marca de lectura y recuenta."""
        await self.watermark_repo.mark_read(conversation_id, self.identity.id, utcnow())
        logger.info(
            "Conversación leída",
            user_id=self.identity.id,
            conversation_id=conversation_id,
        )
        await self.refresh()

    async def _reconcile_loop(self, interval: float):
        # Respaldo por si el change-stream pierde algún evento
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(
                    "Error inesperado en la reconciliación de no leídos",
                    user_id=self.identity.id,
                    error=str(e),
                )

    async def close(self):
        self._trigger.cancel()
        if self._reconcile_task:
            self._reconcile_task.cancel()
            await asyncio.gather(self._reconcile_task, return_exceptions=True)
            self._reconcile_task = None

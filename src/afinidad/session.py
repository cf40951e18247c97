"""
Sesión de engagement.

Agrupa todo lo que vive mientras una identidad está logueada: el router
de notificaciones, los contadores de no leídos y los decks abiertos.
Nada de esto es global; al hacer logout se desarma completo.
"""

from typing import Callable, Optional

import structlog

from afinidad.auth import BaseIdentityProvider
from afinidad.config import Settings, get_settings
from afinidad.database import BaseStore
from afinidad.deck import SwipeDeckController
from afinidad.errors import SwipeWriteFailed
from afinidad.matching import CandidateFeed, CompatibilityScorer
from afinidad.models import Identity, MatchRecord
from afinidad.notifications import BasePushSink, UnreadAggregator
from afinidad.realtime import NotificationRing, RealtimeEventRouter

logger = structlog.get_logger()


class EngagementSession:
    """Ciclo de vida de una identidad: login -> start -> open_deck* -> close."""

    def __init__(
        self,
        identity: Identity,
        store: BaseStore,
        push_sink: Optional[BasePushSink] = None,
        settings: Optional[Settings] = None,
        scorer: Optional[CompatibilityScorer] = None,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.store = store
        self.push_sink = push_sink
        self.scorer = scorer

        self.ring = NotificationRing(self.settings.notification_window)
        self.router = RealtimeEventRouter(
            identity,
            store,
            push_sink=push_sink,
            ring=self.ring,
            settings=self.settings,
        )
        self.unread = UnreadAggregator(identity, store, settings=self.settings)
        self.router.on_event(self.unread.invalidate)

        self.decks: list[SwipeDeckController] = []
        self._started = False

    @classmethod
    async def login(
        cls,
        identity_provider: BaseIdentityProvider,
        store: BaseStore,
        push_sink: Optional[BasePushSink] = None,
        settings: Optional[Settings] = None,
    ) -> Optional["EngagementSession"]:
        """
        Arma la sesión del usuario logueado.

        Returns:
            EngagementSession iniciada, o None si no hay identidad
        """
        identity = await identity_provider.get_current_identity()
        if identity is None:
            logger.info("No hay usuario logueado")
            return None
        session = cls(identity, store, push_sink=push_sink, settings=settings)
        await session.start()
        return session

    @property
    def live(self) -> bool:
        return self.router.live

    async def start(self):
        """Suscribe el router y hace el primer recuento de no leídos."""
        if self._started:
            return
        # Si la suscripción falla la sesión queda sin iniciar y se puede reintentar
        await self.router.subscribe()
        await self.unread.start()
        self._started = True
        logger.info(
            "Sesión iniciada",
            user_id=self.identity.id,
            role=self.identity.role.value,
        )

    def open_deck(
        self,
        on_write_failed: Optional[Callable[[SwipeWriteFailed], None]] = None,
        on_match: Optional[Callable[[MatchRecord], None]] = None,
    ) -> SwipeDeckController:
        """Crea un deck nuevo con su propio feed. Hay que llamar a start() del deck."""
        feed = CandidateFeed(
            self.identity, self.store, scorer=self.scorer, settings=self.settings
        )

        def _matched(match: MatchRecord):
            self.unread.invalidate()
            if on_match:
                on_match(match)

        deck = SwipeDeckController(
            self.identity,
            feed,
            self.store,
            settings=self.settings,
            on_write_failed=on_write_failed,
            on_match=_matched,
        )
        self.decks.append(deck)
        return deck

    async def close(self):
        """Logout: cierra decks, desuscribe el router y apaga los contadores."""
        decks, self.decks = self.decks, []
        for deck in decks:
            await deck.close()
        await self.router.unsubscribe()
        await self.unread.close()
        self.ring.clear()
        self._started = False
        logger.info("Sesión cerrada", user_id=self.identity.id, decks=len(decks))

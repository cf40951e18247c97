"""
Router de eventos en tiempo real.

Escucha el change-stream de likes, matches y mensajes y lo convierte en
notificaciones tipadas para la identidad de la sesión.

Flujo por evento:
1. Decodificar el RowChange en un ChangeEvent tipado
2. Chequear relevancia (me lo mandaron a mí, no lo generé yo)
3. Deduplicar por (tipo, id de registro): el transporte es at-least-once
4. Avisar a los listeners (contadores de no leídos)
5. Enriquecer con nombre/avatar y emitir al buffer y al push
"""

import asyncio
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from afinidad.config import (
    LIKES_TABLE,
    MATCHES_TABLE,
    MESSAGES_TABLE,
    PLACEHOLDER_NAME,
    Settings,
    get_settings,
)
from afinidad.database import (
    BaseStore,
    ConversationRepository,
    ProfileRepository,
    RowChange,
    SubscriptionHandle,
)
from afinidad.errors import EnrichmentLookupFailed, StoreError, SubscriptionDropped
from afinidad.models import (
    Conversation,
    Identity,
    LikeRecord,
    MatchRecord,
    MessageRecord,
    Notification,
    NotificationKind,
    SwipeDirection,
)
from afinidad.notifications.push import BasePushSink, PermissionState
from afinidad.realtime.events import (
    ChangeEvent,
    LikeInserted,
    MatchChanged,
    MessageInserted,
    decode_change,
)
from afinidad.realtime.ring import NotificationRing

logger = structlog.get_logger()

_CONVERSATION_CACHE_SIZE = 200
_PREVIEW_LENGTH = 50


class RealtimeEventRouter:
    """
    Router de notificaciones de una identidad.

    El seen-set, la coalescencia por par y la caché de conversaciones
    viven mientras dura la sesión y se descartan al desuscribirse.
    """

    def __init__(
        self,
        identity: Identity,
        store: BaseStore,
        push_sink: Optional[BasePushSink] = None,
        ring: Optional[NotificationRing] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.store = store
        self.push_sink = push_sink
        self.ring = ring or NotificationRing(self.settings.notification_window)
        self.profile_repo = ProfileRepository(store)
        self.conversation_repo = ConversationRepository(store)
        self._clock = clock

        self.live = False
        self.permission = PermissionState.DEFAULT
        self.last_error: Optional[SubscriptionDropped] = None

        self._active = False
        self._handles: list[SubscriptionHandle] = []
        self._seen: OrderedDict = OrderedDict()
        self._unconfirmed: set[tuple[str, str]] = set()
        self._pair_seen: dict[tuple[NotificationKind, str], float] = {}
        self._conversations: OrderedDict = OrderedDict()
        self._tasks: set[asyncio.Task] = set()
        self._resubscribe_task: Optional[asyncio.Task] = None
        self._event_listeners: list[Callable[[ChangeEvent], None]] = []
        self._status_listeners: list[Callable[[bool], None]] = []

    # Listeners

    def on_event(self, listener: Callable[[ChangeEvent], None]):
        """Se llama con cada evento relevante, haya o no notificación."""
        self._event_listeners.append(listener)

    def on_status(self, listener: Callable[[bool], None]):
        """Se llama con True/False cuando las actualizaciones en vivo cambian de estado."""
        self._status_listeners.append(listener)

    # Suscripción

    async def subscribe(self) -> Callable[[], Awaitable[None]]:
        """
        Conecta los tres canales lógicos a un único dispatcher.

        Returns:
            Función para desuscribirse

        Raises:
            StoreError: Si no se pudo abrir la suscripción inicial
        """
        if self._active:
            return self.unsubscribe
        self._active = True

        if self.push_sink:
            try:
                self.permission = await self.push_sink.request_permission()
            except Exception as e:
                logger.warning("No se pudo pedir permiso de push", error=str(e))
                self.permission = PermissionState.DENIED

        try:
            await self._open_channels()
        except StoreError:
            self._active = False
            raise

        self._set_live(True)
        logger.info(
            "Router realtime suscripto",
            user_id=self.identity.id,
            push=self.permission.value,
        )
        return self.unsubscribe

    async def unsubscribe(self):
        """Corta los tres canales juntos. Los eventos tardíos se descartan."""
        if not self._active and not self._handles:
            return
        self._active = False

        if self._resubscribe_task and not self._resubscribe_task.done():
            self._resubscribe_task.cancel()
        self._resubscribe_task = None

        await self._close_channels()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self._seen.clear()
        self._unconfirmed.clear()
        self._pair_seen.clear()
        self._conversations.clear()
        self._set_live(False)
        logger.info("Router realtime desuscripto", user_id=self.identity.id)

    async def drain(self):
        """Espera a que terminen los eventos en proceso."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._resubscribe_task and not self._resubscribe_task.done():
            await asyncio.gather(self._resubscribe_task, return_exceptions=True)

    async def _open_channels(self):
        specs = [
            (LIKES_TABLE, "INSERT", f"target_id=eq.{self.identity.id}"),
            (MATCHES_TABLE, "INSERT", None),
            (MATCHES_TABLE, "UPDATE", None),
            (MESSAGES_TABLE, "INSERT", None),
        ]
        opened: list[SubscriptionHandle] = []
        try:
            for table, event_type, server_filter in specs:
                handle = await self.store.subscribe(
                    table,
                    event_type,
                    self._on_change,
                    filter=server_filter,
                    on_error=self._on_transport_error,
                )
                opened.append(handle)
        except StoreError:
            # Nada de suscripciones parciales
            for handle in opened:
                try:
                    await handle.unsubscribe()
                except StoreError as e:
                    logger.warning("Error cerrando canal", error=str(e))
            raise
        self._handles = opened

    async def _close_channels(self):
        handles, self._handles = self._handles, []
        results = await asyncio.gather(
            *(handle.unsubscribe() for handle in handles), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Error cerrando canal", error=str(result))

    # Reconexión

    def _on_transport_error(self, error: BaseException):
        if not self._active:
            return
        if self._resubscribe_task and not self._resubscribe_task.done():
            return
        logger.warning("Suscripción realtime caída", user_id=self.identity.id, error=str(error))
        self._set_live(False)
        self._resubscribe_task = asyncio.get_running_loop().create_task(self._resubscribe())

    async def _resubscribe(self):
        await self._close_channels()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.resubscribe_attempts),
            wait=wait_exponential(
                multiplier=self.settings.resubscribe_min_seconds,
                min=self.settings.resubscribe_min_seconds,
                max=self.settings.resubscribe_max_seconds,
            ),
            retry=retry_if_exception_type(StoreError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if not self._active:
                        return
                    await self._open_channels()
        except StoreError as e:
            self.last_error = SubscriptionDropped(str(e))
            logger.error(
                "Actualizaciones en vivo no disponibles",
                user_id=self.identity.id,
                attempts=self.settings.resubscribe_attempts,
                error=str(e),
            )
            return

        if not self._active:
            await self._close_channels()
            return
        self.last_error = None
        self._set_live(True)
        logger.info("Suscripción realtime restablecida", user_id=self.identity.id)

    def _set_live(self, live: bool):
        if self.live == live:
            return
        self.live = live
        for listener in self._status_listeners:
            try:
                listener(live)
            except Exception as e:
                logger.warning("Error en listener de estado", error=str(e))

    # Dispatch

    def _on_change(self, change: RowChange):
        if not self._active:
            return
        event = decode_change(change)
        if event is None:
            return

        key = self._relevance_key(event)
        if key is None:
            return
        if key in self._seen or key in self._unconfirmed:
            if key in self._seen:
                self._seen.move_to_end(key)
            logger.debug("Evento duplicado descartado", kind=key[0], record_id=key[1])
            return
        # Los mensajes se recuerdan recién al confirmar que la conversación es mía
        if isinstance(event, MessageInserted):
            self._unconfirmed.add(key)
        else:
            self._remember(key)

        task = asyncio.get_running_loop().create_task(self._dispatch(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _remember(self, key: tuple[str, str]):
        self._seen[key] = None
        if len(self._seen) > self.settings.seen_set_size:
            self._seen.popitem(last=False)

    def _relevance_key(self, event: ChangeEvent) -> Optional[tuple[str, str]]:
        """
        Clave de deduplicación del evento, o None si no le interesa a esta identidad.

        Una misma fila de matches genera varios eventos; sólo cuenta el que
        la vuelve mutua. La pertenencia a la conversación se chequea después.
        """
        me = self.identity.id
        if isinstance(event, LikeInserted):
            like = event.like
            if like.target_id != me or like.user_id == me or not like.direction.is_positive:
                return None
            return ("like", like.id)
        if isinstance(event, MatchChanged):
            if not event.match.involves(me) or not event.became_mutual:
                return None
            return ("match", event.match.id)
        if event.message.sender_id == me:
            return None
        return ("message", event.message.id)

    async def _dispatch(self, event: ChangeEvent):
        try:
            if isinstance(event, LikeInserted):
                notification = await self._handle_like(event.like)
            elif isinstance(event, MatchChanged):
                notification = await self._handle_match(event)
            else:
                notification = await self._handle_message(event.message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Error procesando evento realtime", error=str(e))
            return

        if notification is not None and self._active:
            await self._emit(notification)

    def _notify_listeners(self, event: ChangeEvent):
        for listener in self._event_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning("Error en listener de eventos", error=str(e))

    def _coalesced(self, kind: NotificationKind, counterpart: str) -> bool:
        """True si ya se notificó el mismo (tipo, contraparte) dentro de la ventana."""
        now = self._clock()
        window = self.settings.pair_coalesce_seconds
        key = (kind, counterpart)
        last = self._pair_seen.get(key)
        if last is not None and now - last < window:
            return True
        self._pair_seen[key] = now
        if len(self._pair_seen) > self.settings.seen_set_size:
            self._pair_seen = {
                k: t for k, t in self._pair_seen.items() if now - t < window
            }
        return False

    async def _handle_like(self, like: LikeRecord) -> Optional[Notification]:
        self._notify_listeners(LikeInserted(like))
        super_like = like.direction is SwipeDirection.SUPER
        kind = NotificationKind.SUPER_LIKE if super_like else NotificationKind.LIKE
        if self._coalesced(kind, like.user_id):
            return None

        name, avatar = await self._enrich(like.user_id)
        return Notification(
            id=f"{kind.value}-{like.id}",
            kind=kind,
            record_id=like.id,
            source_identity=like.user_id,
            title=name,
            body="gave you a Super Like! ⭐" if super_like else "liked your profile! 🔥",
            avatar_url=avatar,
            payload={"like_id": like.id, "listing_id": like.listing_id},
        )

    async def _handle_match(self, event: MatchChanged) -> Optional[Notification]:
        match: MatchRecord = event.match
        self._notify_listeners(event)
        counterpart = match.counterpart_of(self.identity.id)
        if self._coalesced(NotificationKind.MATCH, counterpart):
            return None

        name, avatar = await self._enrich(counterpart)
        return Notification(
            id=f"match-{match.id}",
            kind=NotificationKind.MATCH,
            record_id=match.id,
            source_identity=counterpart,
            title="It's a Match! 🎉",
            body=f"You and {name} liked each other!",
            avatar_url=avatar,
            payload={"match_id": match.id, "listing_id": match.listing_id},
        )

    async def _handle_message(self, message: MessageRecord) -> Optional[Notification]:
        key = ("message", message.id)
        try:
            conversation = await self._get_conversation(message.conversation_id)
        except StoreError as e:
            # Sin marcar como visto: la reentrega del transporte lo vuelve a intentar
            logger.warning(
                "No se pudo resolver la conversación",
                conversation_id=message.conversation_id,
                error=str(e),
            )
            return None
        finally:
            self._unconfirmed.discard(key)
        if conversation is None or not conversation.involves(self.identity.id):
            return None

        self._remember(key)
        self._notify_listeners(MessageInserted(message))
        name, avatar = await self._enrich(message.sender_id)
        preview = message.body[:_PREVIEW_LENGTH]
        if len(message.body) > _PREVIEW_LENGTH:
            preview += "..."
        return Notification(
            id=f"message-{message.id}",
            kind=NotificationKind.MESSAGE,
            record_id=message.id,
            source_identity=message.sender_id,
            title=name,
            body=f'sent you a message: "{preview}"',
            avatar_url=avatar,
            payload={"conversation_id": message.conversation_id},
        )

    async def _get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        if conversation_id in self._conversations:
            self._conversations.move_to_end(conversation_id)
            return self._conversations[conversation_id]
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is not None:
            self._conversations[conversation_id] = conversation
            if len(self._conversations) > _CONVERSATION_CACHE_SIZE:
                self._conversations.popitem(last=False)
        return conversation

    async def _enrich(self, user_id: str) -> tuple[str, Optional[str]]:
        """Nombre y avatar de quien generó el evento; placeholder si falla."""
        try:
            profile = await self.profile_repo.get_display(user_id)
        except Exception as e:
            failure = EnrichmentLookupFailed(user_id, e)
            logger.warning(str(failure), user_id=user_id, error=str(e))
            return PLACEHOLDER_NAME, None
        if not profile:
            return PLACEHOLDER_NAME, None
        return profile.get("full_name") or PLACEHOLDER_NAME, profile.get("avatar_url")

    async def _emit(self, notification: Notification):
        # El buffer y el push son independientes: uno puede fallar sin afectar al otro
        try:
            self.ring.add(notification)
        except Exception as e:
            logger.error(
                "Error actualizando buffer de notificaciones",
                notification_id=notification.id,
                error=str(e),
            )

        if self.push_sink and self.permission is PermissionState.GRANTED:
            try:
                await self.push_sink.present(notification)
            except Exception as e:
                logger.error(
                    "Error enviando push",
                    notification_id=notification.id,
                    error=str(e),
                )

        logger.info(
            "Notificación emitida",
            user_id=self.identity.id,
            kind=notification.kind.value,
            notification_id=notification.id,
        )

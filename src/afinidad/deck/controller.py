"""
Swipe deck.

Máquina de estados sobre una sesión de feed:

    IDLE -> LOADING -> READY <-> SWIPING -> EXHAUSTED
                          \\-> FAILED (falló la última página, se puede reintentar)

El swipe se aplica en memoria en forma sincrónica (nunca espera a la
red) y la escritura durable queda en manos de SwipeWriter.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union
from uuid import uuid4

import structlog

from afinidad.config import Settings, get_settings
from afinidad.database import BaseStore
from afinidad.deck.writer import SwipeWriter
from afinidad.errors import FeedFetchError, SwipeWriteFailed
from afinidad.matching import CandidateFeed
from afinidad.models import (
    Identity,
    MatchRecord,
    ScoredCandidate,
    SwipeDirection,
    SwipeEvent,
    WriteStatus,
)
from afinidad.utils.values import utcnow

logger = structlog.get_logger()


class DeckState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SWIPING = "swiping"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class UndoUnavailable:
    """Resultado de un undo que no se pudo aplicar."""

    reason: str  # empty | finalized | expired


class SwipeDeckController:
    """
    Pila de candidatos de una sesión de navegación.

    Es dueño exclusivo de la posición, la pila y el log de undo; no se
    comparte entre sesiones.
    """

    def __init__(
        self,
        identity: Identity,
        feed: CandidateFeed,
        store: BaseStore,
        settings: Optional[Settings] = None,
        on_write_failed: Optional[Callable[[SwipeWriteFailed], None]] = None,
        on_match: Optional[Callable[[MatchRecord], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.feed = feed
        self.session_id = uuid4().hex
        self.writer = SwipeWriter(
            identity,
            store,
            settings=self.settings,
            on_failure=on_write_failed,
            on_match=on_match,
        )

        self.position = 0
        self.undo_log: list[SwipeEvent] = []
        self.last_error: Optional[FeedFetchError] = None

        self._stack: list[ScoredCandidate] = []
        self._presented: set[str] = set()
        self._next_cursor: Optional[int] = 0
        self._generation = 0
        self._load_task: Optional[asyncio.Task] = None
        self._started = False
        self._closed = False

    # Estado

    @property
    def stack(self) -> list[ScoredCandidate]:
        return list(self._stack)

    @property
    def current(self) -> Optional[ScoredCandidate]:
        if self.position < len(self._stack):
            return self._stack[self.position]
        return None

    @property
    def remaining(self) -> list[ScoredCandidate]:
        return self._stack[self.position:]

    @property
    def failed_writes(self) -> list[SwipeWriteFailed]:
        return list(self.writer.failed_writes)

    @property
    def is_loading(self) -> bool:
        return self._load_task is not None and not self._load_task.done()

    @property
    def state(self) -> DeckState:
        if self._closed or not self._started:
            return DeckState.IDLE
        if self.current is None:
            if self.is_loading:
                return DeckState.LOADING
            if self.last_error is not None:
                return DeckState.FAILED
            if self._next_cursor is None:
                return DeckState.EXHAUSTED
            return DeckState.LOADING
        if self.writer.pending:
            return DeckState.SWIPING
        return DeckState.READY

    # Ciclo de vida

    async def start(self):
        """
        Arranca la sesión cargando la primera página.

        Raises:
            FeedFetchError: Si la primera página no se pudo traer
        """
        if self._started:
            return
        self._started = True
        logger.info("Sesión de swipe iniciada", user_id=self.identity.id, session=self.session_id)
        await self._load_next()

    async def retry(self):
        """Reintenta la página que falló. Propaga FeedFetchError."""
        self.last_error = None
        await self._load_next()

    async def reset(self):
        """Descarta la pila y vuelve a empezar desde la primera página."""
        self._cancel_load()
        self._generation += 1
        self._stack = []
        self._presented.clear()
        self.undo_log = []
        self.position = 0
        self._next_cursor = 0
        self.last_error = None
        self.feed.reset()
        logger.info("Sesión de swipe reiniciada", user_id=self.identity.id)
        await self._load_next()

    async def drain(self):
        """Espera cargas de páginas y escrituras pendientes."""
        while self.is_loading:
            await asyncio.wait({self._load_task})
        await self.writer.drain()

    async def close(self, drain_writes: bool = True):
        """Termina la sesión: las páginas que lleguen tarde se descartan."""
        self._closed = True
        self._generation += 1
        self._cancel_load()
        await self.writer.close(drain=drain_writes)
        logger.info(
            "Sesión de swipe cerrada",
            user_id=self.identity.id,
            swipes=len(self.undo_log),
            failed=len(self.writer.failed_writes),
        )

    # Swipes

    def swipe(self, direction: Union[SwipeDirection, str]) -> Optional[SwipeEvent]:
        """
        Registra un swipe sobre la carta actual.

        El registro local es sincrónico: cuando esta llamada vuelve el
        swipe ya está en el log y la posición avanzó, aunque la escritura
        siga en vuelo.

        Returns:
            El SwipeEvent creado, o None si no hay carta disponible
        """
        card = self.current
        if card is None or self._closed:
            return None

        direction = SwipeDirection(direction)
        if self.undo_log:
            self.undo_log[-1].finalized = True

        event = SwipeEvent(
            target_id=card.id,
            recipient_id=card.candidate.owner_id,
            direction=direction,
            target_type=card.candidate.target_type,
            session_id=self.session_id,
        )
        self.undo_log.append(event)
        self.position += 1
        self.writer.submit(event)

        logger.debug(
            "Swipe aplicado",
            target_id=event.target_id,
            direction=direction.value,
            position=self.position,
        )
        self._maybe_prefetch()
        return event

    def undo(self) -> Union[SwipeEvent, UndoUnavailable]:
        """
        Deshace el último swipe si todavía no quedó finalizado.

        Returns:
            El SwipeEvent deshecho, o UndoUnavailable con el motivo
        """
        if not self.undo_log:
            return UndoUnavailable("empty")

        event = self.undo_log[-1]
        if event.finalized:
            return UndoUnavailable("finalized")

        window = self.settings.undo_window_seconds
        if window is not None and (utcnow() - event.timestamp).total_seconds() > window:
            event.finalized = True
            return UndoUnavailable("expired")

        self.undo_log.pop()
        self.position -= 1

        if event.status is WriteStatus.FAILED:
            self.writer.forget(event)
        elif not self.writer.cancel(event) and event.status in (
            WriteStatus.IN_FLIGHT,
            WriteStatus.CONFIRMED,
        ):
            self.writer.compensate(event)

        logger.info(
            "Swipe deshecho",
            target_id=event.target_id,
            direction=event.direction.value,
            position=self.position,
        )
        return event

    def retry_failed_writes(self) -> int:
        return self.writer.retry_failed()

    # Paginación

    def _append(self, candidates: list[ScoredCandidate]) -> int:
        added = 0
        for scored in candidates:
            if scored.id in self._presented:
                continue
            self._presented.add(scored.id)
            self._stack.append(scored)
            added += 1
        return added

    async def _load_next(self):
        generation = self._generation
        while self._next_cursor is not None:
            cursor = self._next_cursor
            try:
                page = await self.feed.next_page(cursor)
            except FeedFetchError as e:
                if generation == self._generation:
                    self.last_error = e
                raise

            if generation != self._generation:
                logger.info("Página descartada de una sesión vieja", cursor=cursor)
                return

            self._next_cursor = page.next_cursor
            if self._append(page.candidates):
                return

        logger.info("Feed agotado", user_id=self.identity.id, presented=len(self._presented))

    async def _background_load(self):
        try:
            await self._load_next()
        except FeedFetchError as e:
            logger.warning("Error precargando página", user_id=self.identity.id, error=str(e))

    def _maybe_prefetch(self):
        if (
            self._closed
            or self.is_loading
            or self._next_cursor is None
            or self.last_error is not None
            or len(self.remaining) > self.settings.prefetch_threshold
        ):
            return
        self._load_task = asyncio.get_running_loop().create_task(self._background_load())

    def _cancel_load(self):
        if self.is_loading:
            self._load_task.cancel()
        self._load_task = None

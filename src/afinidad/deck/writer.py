"""
Escritura durable de swipes.

Segunda fase del commit optimista: el controller aplica el swipe en
memoria y encola el evento acá. Un único worker por sesión procesa la
cola en orden, así una compensación (undo) siempre corre después de la
escritura que revierte.
"""

import asyncio
from typing import Callable, Optional

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from afinidad.config import Settings, get_settings
from afinidad.database import BaseStore, LikeRepository, MatchRepository
from afinidad.errors import SwipeWriteFailed
from afinidad.models import (
    Identity,
    MatchRecord,
    Role,
    SwipeEvent,
    TargetType,
    WriteStatus,
)

logger = structlog.get_logger()

_WRITE = "write"
_COMPENSATE = "compensate"


class SwipeWriter:
    """
    Cola de escrituras de una sesión de swipe.

    Responsabilidades:
    - Persistir cada swipe con reintentos acotados
    - Cancelar escrituras todavía no enviadas o compensar las enviadas
    - Detectar matches mutuos tras un like confirmado
    - Guardar las escrituras fallidas para reintento manual
    """

    def __init__(
        self,
        identity: Identity,
        store: BaseStore,
        settings: Optional[Settings] = None,
        on_failure: Optional[Callable[[SwipeWriteFailed], None]] = None,
        on_match: Optional[Callable[[MatchRecord], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.like_repo = LikeRepository(store)
        self.match_repo = MatchRepository(store)
        self.on_failure = on_failure
        self.on_match = on_match

        self.failed_writes: list[SwipeWriteFailed] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._undone: set[str] = set()
        self._outstanding = 0

    @property
    def pending(self) -> int:
        """Trabajos encolados o en curso."""
        return self._outstanding

    def _enqueue(self, kind: str, event: SwipeEvent):
        self._outstanding += 1
        self._queue.put_nowait((kind, event))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    def submit(self, event: SwipeEvent):
        """Encola la escritura de un swipe. No bloquea."""
        event.status = WriteStatus.PENDING
        self._enqueue(_WRITE, event)

    def cancel(self, event: SwipeEvent) -> bool:
        """Cancela una escritura que todavía no salió. True si se canceló."""
        if event.status is not WriteStatus.PENDING:
            return False
        event.status = WriteStatus.CANCELLED
        self._undone.add(event.id)
        logger.info("Escritura de swipe cancelada", target_id=event.target_id)
        return True

    def forget(self, event: SwipeEvent):
        """Descarta un swipe fallido que se deshizo: ya no se reintenta."""
        self._undone.add(event.id)
        self.failed_writes = [f for f in self.failed_writes if f.event.id != event.id]
        event.status = WriteStatus.CANCELLED
        logger.info("Swipe fallido descartado", target_id=event.target_id)

    def compensate(self, event: SwipeEvent):
        """Encola el borrado del like de un swipe deshecho."""
        self._undone.add(event.id)
        self._enqueue(_COMPENSATE, event)

    def retry_failed(self) -> int:
        """
        Reencola las escrituras fallidas.

        Returns:
            Cantidad de swipes reencolados
        """
        failures, self.failed_writes = self.failed_writes, []
        count = 0
        for failure in failures:
            event = failure.event
            if event.id in self._undone:
                continue
            event.error = None
            self.submit(event)
            count += 1
        if count:
            logger.info("Reintentando swipes fallidos", count=count)
        return count

    async def drain(self):
        """Espera a que la cola quede vacía."""
        if self._worker is None:
            return
        await self._queue.join()

    async def close(self, drain: bool = True):
        if drain:
            await self.drain()
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    async def _run(self):
        while True:
            kind, event = await self._queue.get()
            try:
                if kind == _WRITE:
                    await self._write(event)
                else:
                    await self._compensate(event)
            except Exception as e:
                logger.error(
                    "Error inesperado en la cola de swipes",
                    target_id=event.target_id,
                    error=str(e),
                )
            finally:
                self._outstanding -= 1
                self._queue.task_done()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.swipe_write_attempts),
            wait=wait_exponential(
                multiplier=self.settings.swipe_retry_min_seconds,
                min=self.settings.swipe_retry_min_seconds,
                max=self.settings.swipe_retry_max_seconds,
            ),
            reraise=True,
        )

    async def _write(self, event: SwipeEvent):
        if event.status is WriteStatus.CANCELLED:
            return

        event.status = WriteStatus.IN_FLIGHT
        row: dict = {}
        try:
            async for attempt in self._retrying():
                with attempt:
                    event.attempts += 1
                    row = await self.like_repo.create(event, self.identity.id)
        except Exception as e:
            event.status = WriteStatus.FAILED
            event.error = str(e)
            failure = SwipeWriteFailed(event, event.attempts, e)
            self.failed_writes.append(failure)
            logger.error(
                "Swipe no persistido",
                target_id=event.target_id,
                attempts=event.attempts,
                error=str(e),
            )
            if self.on_failure:
                self.on_failure(failure)
            return

        if row.get("id") is not None:
            event.record_id = str(row["id"])
        event.status = WriteStatus.CONFIRMED

        if event.direction.is_positive and event.id not in self._undone:
            await self._detect_match(event)

    async def _compensate(self, event: SwipeEvent):
        # Si la escritura nunca llegó al store no hay nada que revertir
        if event.status in (WriteStatus.FAILED, WriteStatus.CANCELLED):
            return
        try:
            async for attempt in self._retrying():
                with attempt:
                    await self.like_repo.remove(event, self.identity.id)
        except Exception as e:
            logger.error(
                "No se pudo revertir el swipe",
                target_id=event.target_id,
                error=str(e),
            )
            return
        event.status = WriteStatus.CANCELLED

    async def _detect_match(self, event: SwipeEvent):
        """Si la contraparte ya dio like, el par pasa a match mutuo."""
        counterpart = event.recipient_id
        try:
            reciprocal = await self.like_repo.find_reciprocal(self.identity.id, counterpart)
            if not reciprocal:
                return

            if self.identity.role is Role.SEEKER:
                seeker_id, offerer_id = self.identity.id, counterpart
            else:
                seeker_id, offerer_id = counterpart, self.identity.id
            listing_id = event.target_id if event.target_type is TargetType.LISTING else None

            match = await self.match_repo.ensure_mutual(seeker_id, offerer_id, listing_id)
        except Exception as e:
            logger.warning(
                "Error detectando match",
                target_id=event.target_id,
                error=str(e),
            )
            return

        if self.on_match:
            self.on_match(match)

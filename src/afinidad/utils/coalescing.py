"""
Trigger con coalescencia (debounce).

Junta todos los disparos que llegan dentro de una ventana y ejecuta la
acción una sola vez al cerrarla. Un disparo que llega mientras la acción
corre agenda exactamente una ejecución más.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()


class CoalescingTrigger:
    def __init__(self, action: Callable[[], Awaitable[None]], window: float, name: str = ""):
        self._action = action
        self.window = window
        self.name = name or getattr(action, "__name__", "trigger")
        self.runs = 0
        self._dirty = False
        self._task: Optional[asyncio.Task] = None

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def fire(self):
        """Marca que hay que recalcular. No bloquea."""
        self._dirty = True
        if not self.scheduled:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        while self._dirty:
            await asyncio.sleep(self.window)
            self._dirty = False
            self.runs += 1
            try:
                await self._action()
            except Exception as e:
                logger.warning("Error en acción coalescida", trigger=self.name, error=str(e))

    async def flush(self):
        """Espera a que no quede ninguna ejecución pendiente."""
        while self.scheduled:
            await asyncio.wait({self._task})

    def cancel(self):
        self._dirty = False
        if self.scheduled:
            self._task.cancel()
        self._task = None

"""
Interfaz del store.

Abstrae las tres primitivas que el motor necesita del backend:
lectura por rango, escritura (insert/update/delete) y suscripción al
change-stream por tabla y tipo de evento.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

# (columna, operador, valor). Operadores: eq, neq, gt, gte, lt, lte, in
Filter = tuple[str, str, Any]

FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")


@dataclass
class RowChange:
    """Cambio de una fila tal como lo entrega el transporte."""

    event_type: str  # INSERT | UPDATE
    table: str
    new: dict
    old: Optional[dict] = None


ChangeCallback = Callable[[RowChange], None]
ErrorCallback = Callable[[BaseException], None]


class SubscriptionHandle(ABC):
    """Handle de una suscripción activa."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        pass


class BaseStore(ABC):
    """Clase base para stores."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        order: Optional[tuple[str, bool]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        columns: str = "*",
    ) -> list[dict]:
        """
        Lectura por rango.

        Args:
            table: Nombre de la tabla
            filters: Lista de (columna, operador, valor)
            order: (columna, descendente)
            limit: Máximo de filas
            offset: Filas a saltear

        Returns:
            Lista de filas

        Raises:
            StoreError: Si el store no responde
        """
        pass

    @abstractmethod
    async def count(self, table: str, filters: Optional[list[Filter]] = None) -> int:
        pass

    @abstractmethod
    async def insert(self, table: str, row: dict) -> dict:
        pass

    @abstractmethod
    async def upsert(self, table: str, row: dict, on_conflict: str) -> dict:
        pass

    @abstractmethod
    async def update(self, table: str, filters: list[Filter], patch: dict) -> list[dict]:
        pass

    @abstractmethod
    async def delete(self, table: str, filters: list[Filter]) -> list[dict]:
        pass

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        event_type: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        """
        Se suscribe a cambios de una tabla.

        Args:
            table: Tabla a observar
            event_type: INSERT o UPDATE
            callback: Se invoca con cada RowChange (at-least-once)
            filter: Filtro del lado del servidor, ej. 'target_id=eq.<uuid>'
            on_error: Se invoca si el transporte se cae

        Returns:
            Handle para cancelar la suscripción
        """
        pass

"""
Cliente de Supabase.

Implementa BaseStore sobre el cliente asíncrono de Supabase: consultas
PostgREST para lecturas/escrituras y canales realtime para el
change-stream.
"""

from typing import Optional
from uuid import uuid4

import structlog
from realtime import RealtimeSubscribeStates
from supabase import AsyncClient, acreate_client

from afinidad.config import Settings, get_settings
from afinidad.database.store import (
    BaseStore,
    ChangeCallback,
    ErrorCallback,
    Filter,
    FILTER_OPERATORS,
    RowChange,
    SubscriptionHandle,
)
from afinidad.errors import StoreError

logger = structlog.get_logger()

_FAILED_STATES = (
    RealtimeSubscribeStates.CHANNEL_ERROR,
    RealtimeSubscribeStates.TIMED_OUT,
    RealtimeSubscribeStates.CLOSED,
)


def decode_payload(table: str, payload: dict) -> RowChange:
    """
    Normaliza el payload de postgres_changes.

    Según la versión del cliente realtime el cambio viene en
    payload['data'] con record/old_record, o plano con new/old.
    """
    data = payload.get("data", payload) or {}
    new = data.get("record") or data.get("new") or {}
    old = data.get("old_record") or data.get("old") or None
    event_type = data.get("type") or data.get("eventType") or ""
    return RowChange(
        event_type=str(event_type).upper(),
        table=data.get("table") or table,
        new=dict(new),
        old=dict(old) if old else None,
    )


class SupabaseSubscription(SubscriptionHandle):
    """Un canal realtime con un único binding de postgres_changes."""

    def __init__(self, client: AsyncClient, channel, table: str, event_type: str):
        self._client = client
        self._channel = channel
        self.table = table
        self.event_type = event_type
        self.closing = False

    async def unsubscribe(self) -> None:
        self.closing = True
        try:
            await self._client.remove_channel(self._channel)
        except Exception as e:
            raise StoreError("unsubscribe", self.table, str(e)) from e


class SupabaseStore(BaseStore):
    """Wrapper del cliente de Supabase con la interfaz del store."""

    def __init__(self, client: AsyncClient):
        self._client = client

    @property
    def client(self) -> AsyncClient:
        """Acceso directo al cliente de Supabase."""
        return self._client

    def table(self, name: str):
        """Acceso a una tabla específica."""
        return self._client.table(name)

    @staticmethod
    def _apply_filters(query, filters: Optional[list[Filter]]):
        for column, op, value in filters or []:
            if op not in FILTER_OPERATORS:
                raise ValueError(f"Operador de filtro no soportado: {op}")
            if op == "in":
                query = query.in_(column, list(value))
            else:
                query = getattr(query, op)(column, value)
        return query

    async def _execute(self, operation: str, table: str, query):
        try:
            return await query.execute()
        except Exception as e:
            logger.error(
                "Error ejecutando consulta",
                operation=operation,
                table=table,
                error=str(e),
            )
            raise StoreError(operation, table, str(e)) from e

    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        order: Optional[tuple[str, bool]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        columns: str = "*",
    ) -> list[dict]:
        query = self._apply_filters(self.table(table).select(columns), filters)
        if order:
            column, desc = order
            query = query.order(column, desc=desc)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        response = await self._execute("select", table, query)
        return response.data or []

    async def count(self, table: str, filters: Optional[list[Filter]] = None) -> int:
        query = self._apply_filters(
            self.table(table).select("id", count="exact", head=True), filters
        )
        response = await self._execute("count", table, query)
        return response.count or 0

    async def insert(self, table: str, row: dict) -> dict:
        response = await self._execute("insert", table, self.table(table).insert(row))
        return response.data[0] if response.data else {}

    async def upsert(self, table: str, row: dict, on_conflict: str) -> dict:
        response = await self._execute(
            "upsert", table, self.table(table).upsert(row, on_conflict=on_conflict)
        )
        return response.data[0] if response.data else {}

    async def update(self, table: str, filters: list[Filter], patch: dict) -> list[dict]:
        query = self._apply_filters(self.table(table).update(patch), filters)
        response = await self._execute("update", table, query)
        return response.data or []

    async def delete(self, table: str, filters: list[Filter]) -> list[dict]:
        query = self._apply_filters(self.table(table).delete(), filters)
        response = await self._execute("delete", table, query)
        return response.data or []

    async def subscribe(
        self,
        table: str,
        event_type: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        channel = self._client.channel(f"{table}-{event_type.lower()}-{uuid4().hex[:8]}")
        handle = SupabaseSubscription(self._client, channel, table, event_type)

        def _on_change(payload: dict) -> None:
            callback(decode_payload(table, payload))

        def _on_status(status, error: Optional[Exception] = None) -> None:
            if status == RealtimeSubscribeStates.SUBSCRIBED:
                logger.info("Canal realtime suscripto", table=table, event=event_type)
                return
            if status in _FAILED_STATES and not handle.closing:
                logger.warning(
                    "Canal realtime caído",
                    table=table,
                    event=event_type,
                    status=str(status),
                    error=str(error) if error else None,
                )
                if on_error:
                    on_error(error or ConnectionError(str(status)))

        channel.on_postgres_changes(
            event_type,
            _on_change,
            table=table,
            schema="public",
            filter=filter,
        )
        try:
            await channel.subscribe(_on_status)
        except Exception as e:
            logger.error("Error suscribiendo canal", table=table, error=str(e))
            raise StoreError("subscribe", table, str(e)) from e
        return handle


async def create_supabase_store(settings: Optional[Settings] = None) -> SupabaseStore:
    """
    Crea un store conectado a Supabase.

    Returns:
        SupabaseStore configurado

    Raises:
        ValueError: Si las credenciales no están configuradas
    """
    settings = settings or get_settings()

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL y SUPABASE_KEY son requeridos. "
            "Configura las variables de entorno."
        )

    # Usar service key si está disponible para operaciones admin
    key = settings.supabase_service_key or settings.supabase_key

    client = await acreate_client(settings.supabase_url, key)
    logger.info("Cliente de Supabase inicializado", url=settings.supabase_url)

    return SupabaseStore(client)

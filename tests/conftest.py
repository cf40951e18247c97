import asyncio
import itertools
from collections import defaultdict
from typing import Optional

import pytest

from afinidad.config import Settings
from afinidad.database import BaseStore, RowChange, SubscriptionHandle
from afinidad.errors import StoreError
from afinidad.models import Identity, Notification, Role
from afinidad.notifications import BasePushSink, PermissionState
from afinidad.utils.values import parse_timestamp


def _comparable(value):
    parsed = parse_timestamp(value) if isinstance(value, str) else None
    return parsed if parsed is not None else value


def _matches(row: dict, filters) -> bool:
    for column, op, value in filters or []:
        current = row.get(column)
        if op == "eq" and current != value:
            return False
        if op == "neq" and current == value:
            return False
        if op == "in" and current not in list(value):
            return False
        if op in ("gt", "gte", "lt", "lte"):
            if current is None:
                return False
            left, right = _comparable(current), _comparable(value)
            if op == "gt" and not left > right:
                return False
            if op == "gte" and not left >= right:
                return False
            if op == "lt" and not left < right:
                return False
            if op == "lte" and not left <= right:
                return False
    return True


class FakeSubscription(SubscriptionHandle):
    def __init__(self, store, table, event_type, callback, filter, on_error):
        self.store = store
        self.table = table
        self.event_type = event_type
        self.callback = callback
        self.filter = filter
        self.on_error = on_error
        self.active = True

    def accepts(self, row: dict) -> bool:
        if not self.filter:
            return True
        column, _, value = self.filter.partition("=eq.")
        return str(row.get(column)) == value

    async def unsubscribe(self) -> None:
        self.active = False
        if self in self.store.subscriptions:
            self.store.subscriptions.remove(self)


class InMemoryStore(BaseStore):
    """Store en memoria con inyección de fallas y change-stream manual."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.subscribe_failures = 0
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self._failures: dict[tuple[str, str], Optional[int]] = {}
        self._ids = itertools.count(1)

    # Control de los tests

    def seed(self, table: str, *rows: dict) -> list[dict]:
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(next(self._ids)))
            self.tables[table].append(row)
            stored.append(row)
        return stored

    def rows(self, table: str) -> list[dict]:
        return list(self.tables[table])

    def fail(self, operation: str, table: str, times: Optional[int] = None):
        """Falla las próximas `times` llamadas (None = siempre)."""
        self._failures[(operation, table)] = times

    def heal(self, operation: str, table: str):
        self._failures.pop((operation, table), None)

    def hold(self, operation: str, table: str) -> asyncio.Event:
        """Bloquea la operación hasta que se setee el evento devuelto."""
        gate = asyncio.Event()
        self.gates[(operation, table)] = gate
        return gate

    def count_calls(self, operation: str, table: str) -> int:
        return self.calls.count((operation, table))

    def emit(self, table: str, event_type: str, new: dict, old: Optional[dict] = None) -> int:
        delivered = 0
        for sub in list(self.subscriptions):
            if sub.active and sub.table == table and sub.event_type == event_type and sub.accepts(new):
                sub.callback(RowChange(event_type=event_type, table=table, new=dict(new), old=old))
                delivered += 1
        return delivered

    def drop(self):
        for sub in list(self.subscriptions):
            if sub.on_error:
                sub.on_error(ConnectionError("socket closed"))

    async def _check(self, operation: str, table: str):
        self.calls.append((operation, table))
        gate = self.gates.get((operation, table))
        if gate is not None:
            await gate.wait()
        key = (operation, table)
        if key in self._failures:
            remaining = self._failures[key]
            if remaining is not None:
                if remaining <= 1:
                    del self._failures[key]
                else:
                    self._failures[key] = remaining - 1
            raise StoreError(operation, table, "store unavailable")

    # BaseStore

    async def select(self, table, filters=None, order=None, limit=None, offset=0, columns="*"):
        await self._check("select", table)
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters)]
        if order:
            column, desc = order
            rows.sort(key=lambda r: str(r.get(column)), reverse=desc)
        if limit is not None:
            rows = rows[offset:offset + limit]
        return rows

    async def count(self, table, filters=None):
        await self._check("count", table)
        return sum(1 for r in self.tables[table] if _matches(r, filters))

    async def insert(self, table, row):
        await self._check("insert", table)
        return dict(self.seed(table, row)[0])

    async def upsert(self, table, row, on_conflict):
        await self._check("upsert", table)
        keys = [k.strip() for k in on_conflict.split(",")]
        for existing in self.tables[table]:
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(row)
                return dict(existing)
        return dict(self.seed(table, row)[0])

    async def update(self, table, filters, patch):
        await self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(patch)
                updated.append(dict(row))
        return updated

    async def delete(self, table, filters):
        await self._check("delete", table)
        removed = [r for r in self.tables[table] if _matches(r, filters)]
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]
        return removed

    async def subscribe(self, table, event_type, callback, filter=None, on_error=None):
        self.calls.append(("subscribe", table))
        if self.subscribe_failures:
            self.subscribe_failures -= 1
            raise StoreError("subscribe", table, "realtime unavailable")
        sub = FakeSubscription(self, table, event_type, callback, filter, on_error)
        self.subscriptions.append(sub)
        return sub


class FakePushSink(BasePushSink):
    def __init__(self, permission: PermissionState = PermissionState.GRANTED, fail: bool = False):
        self.permission = permission
        self.fail = fail
        self.presented: list[Notification] = []
        self.permission_requests = 0

    async def request_permission(self) -> PermissionState:
        self.permission_requests += 1
        return self.permission

    async def present(self, notification: Notification) -> bool:
        if self.fail:
            raise RuntimeError("push service down")
        self.presented.append(notification)
        return True


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        supabase_url="http://localhost:54321",
        supabase_key="test-key",
        swipe_retry_min_seconds=0,
        swipe_retry_max_seconds=0,
        resubscribe_min_seconds=0,
        resubscribe_max_seconds=0,
        unread_debounce_seconds=0.01,
        unread_reconcile_interval=None,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def seeker():
    return Identity(id="seeker-1", role=Role.SEEKER)


@pytest.fixture
def offerer():
    return Identity(id="owner-1", role=Role.OFFERER)


@pytest.fixture
def push_sink():
    return FakePushSink()

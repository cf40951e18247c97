"""
Buffer circular de notificaciones para la capa de UI.
"""

from collections import deque
from typing import Callable, Optional

from afinidad.models import Notification


class NotificationRing:
    """Las N notificaciones más recientes, la más nueva primero."""

    def __init__(self, size: int = 50):
        self._items: deque[Notification] = deque(maxlen=size)
        self._listeners: list[Callable[[Notification], None]] = []

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> list[Notification]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def on_add(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)

    def add(self, notification: Notification):
        self._items.appendleft(notification)
        for listener in self._listeners:
            listener(notification)

    def get(self, notification_id: str) -> Optional[Notification]:
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        return None

    def mark_read(self, notification_id: str) -> bool:
        notification = self.get(notification_id)
        if notification is None:
            return False
        notification.read = True
        return True

    def mark_all_read(self) -> int:
        count = 0
        for notification in self._items:
            if not notification.read:
                notification.read = True
                count += 1
        return count

    def dismiss(self, notification_id: str) -> bool:
        notification = self.get(notification_id)
        if notification is None:
            return False
        self._items.remove(notification)
        return True

    def clear(self):
        self._items.clear()

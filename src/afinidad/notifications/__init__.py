"""
Módulo de notificaciones.

Incluye el push externo (Telegram) y los contadores de no leídos.
"""

from afinidad.notifications.push import BasePushSink, PermissionState, TelegramPushSink
from afinidad.notifications.unread import UnreadAggregator

__all__ = [
    "BasePushSink",
    "PermissionState",
    "TelegramPushSink",
    "UnreadAggregator",
]

from afinidad.realtime.events import (
    ChangeEvent,
    LikeInserted,
    MatchChanged,
    MessageInserted,
    decode_change,
)
from afinidad.realtime.ring import NotificationRing
from afinidad.realtime.router import RealtimeEventRouter

__all__ = [
    "ChangeEvent",
    "LikeInserted",
    "MatchChanged",
    "MessageInserted",
    "decode_change",
    "NotificationRing",
    "RealtimeEventRouter",
]

"""
Modelos de datos del sistema.

- Identidad y preferencias por rol
- Candidatos y su scoring
- Swipes, registros del change-stream y notificaciones
"""

from afinidad.models.user import (
    Identity,
    Role,
    OffererPreferences,
    SeekerPreferences,
    Preferences,
    preferences_for,
)
from afinidad.models.candidate import Candidate, ScoredCandidate, TargetType
from afinidad.models.swipe import SwipeDirection, SwipeEvent, WriteStatus
from afinidad.models.records import (
    Conversation,
    LikeRecord,
    MatchRecord,
    MessageRecord,
)
from afinidad.models.notification import (
    Notification,
    NotificationKind,
    UnreadCounters,
)

__all__ = [
    # Identidad
    "Identity",
    "Role",
    "OffererPreferences",
    "SeekerPreferences",
    "Preferences",
    "preferences_for",
    # Feed
    "Candidate",
    "ScoredCandidate",
    "TargetType",
    # Swipes
    "SwipeDirection",
    "SwipeEvent",
    "WriteStatus",
    # Change-stream
    "Conversation",
    "LikeRecord",
    "MatchRecord",
    "MessageRecord",
    # Notificaciones
    "Notification",
    "NotificationKind",
    "UnreadCounters",
]

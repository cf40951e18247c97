"""
Módulo de base de datos.

Provee la interfaz del store, su implementación sobre Supabase y los
repositorios por tabla.
"""

from afinidad.database.store import BaseStore, Filter, RowChange, SubscriptionHandle
from afinidad.database.supabase_client import SupabaseStore, create_supabase_store
from afinidad.database.repositories import (
    CandidateRepository,
    ConversationRepository,
    LikeRepository,
    MatchRepository,
    MessageRepository,
    PreferencesRepository,
    ProfileRepository,
    ReadWatermarkRepository,
)

__all__ = [
    "BaseStore",
    "Filter",
    "RowChange",
    "SubscriptionHandle",
    "SupabaseStore",
    "create_supabase_store",
    "CandidateRepository",
    "ConversationRepository",
    "LikeRepository",
    "MatchRepository",
    "MessageRepository",
    "PreferencesRepository",
    "ProfileRepository",
    "ReadWatermarkRepository",
]

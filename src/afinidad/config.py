"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Encontrar la raíz del proyecto (donde está el .env)
# config.py -> afinidad/ -> src/ -> raíz del proyecto
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Configuración principal del motor de matching."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(..., description="URL del proyecto Supabase")
    supabase_key: str = Field(..., description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key para operaciones admin"
    )

    # Telegram (push externo)
    telegram_bot_token: Optional[str] = Field(
        None, description="Token del bot de Telegram para notificaciones push"
    )
    telegram_chat_id: Optional[int] = Field(
        None, description="Chat al que se envían las notificaciones push"
    )

    # Feed de candidatos
    feed_page_size: int = Field(10, ge=1, description="Candidatos por página")
    feed_min_percentage: int = Field(
        10, ge=0, le=100, description="Porcentaje mínimo para mostrar un candidato"
    )
    neutral_percentage: int = Field(
        50, ge=0, le=100, description="Porcentaje cuando no hay datos para comparar"
    )

    # Swipe deck
    swipe_write_attempts: int = Field(
        3, ge=1, description="Intentos de escritura de un swipe antes de marcarlo fallido"
    )
    swipe_retry_min_seconds: float = Field(0.3, ge=0.0, description="Backoff mínimo")
    swipe_retry_max_seconds: float = Field(2.0, ge=0.0, description="Backoff máximo")
    undo_window_seconds: Optional[float] = Field(
        30.0, description="Ventana para deshacer el último swipe (None = sin límite)"
    )
    prefetch_threshold: int = Field(
        0, ge=0, description="Cartas restantes a partir de las cuales se pide otra página"
    )

    # Realtime
    seen_set_size: int = Field(500, ge=1, description="Eventos recordados para deduplicar")
    notification_window: int = Field(50, ge=1, description="Notificaciones en memoria")
    pair_coalesce_seconds: float = Field(
        5.0, ge=0.0, description="Ventana de coalescencia por (tipo, contraparte)"
    )
    resubscribe_attempts: int = Field(5, ge=1, description="Reintentos de re-suscripción")
    resubscribe_min_seconds: float = Field(1.0, ge=0.0)
    resubscribe_max_seconds: float = Field(30.0, ge=0.0)

    # Contadores de no leídos
    unread_debounce_seconds: float = Field(
        0.5, ge=0.0, description="Ventana de debounce para recalcular contadores"
    )
    unread_reconcile_interval: Optional[float] = Field(
        30.0, description="Reconciliación periódica de respaldo (None = desactivada)"
    )

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()


# Tablas del store
PROFILES_TABLE = "profiles"
LISTINGS_TABLE = "listings"
USER_ROLES_TABLE = "user_roles"
OWNER_PREFERENCES_TABLE = "owner_client_preferences"
CLIENT_PREFERENCES_TABLE = "client_filter_preferences"
LIKES_TABLE = "likes"
MATCHES_TABLE = "matches"
CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "conversation_messages"
CONVERSATION_READS_TABLE = "conversation_reads"

PLACEHOLDER_NAME = "Someone"

"""
Errores tipados del motor.

Las condiciones esperables (factores sin datos, feed vacío, undo no
disponible) no son excepciones: se expresan como valores de retorno.
Acá viven sólo las fallas de transporte/store que se propagan al caller.
"""

from typing import Optional


class AfinidadError(Exception):
    """Base de todos los errores del motor."""


class StoreError(AfinidadError):
    """Falla de lectura/escritura contra el store."""

    def __init__(self, operation: str, table: str, message: str = ""):
        self.operation = operation
        self.table = table
        super().__init__(f"{operation} sobre '{table}' falló: {message}".rstrip(": "))


class FeedFetchError(AfinidadError):
    """No se pudo traer una página de candidatos. No se reintenta solo."""

    def __init__(self, cursor: int, message: str = ""):
        self.cursor = cursor
        super().__init__(f"Error trayendo la página {cursor}: {message}")


class SwipeWriteFailed(AfinidadError):
    """La escritura durable de un swipe falló tras agotar los reintentos."""

    def __init__(self, event, attempts: int, cause: Optional[BaseException] = None):
        self.event = event
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Swipe sobre {event.target_id} no persistido tras {attempts} intentos"
        )


class SubscriptionDropped(AfinidadError):
    """Se perdió la suscripción realtime y no se pudo restablecer."""


class EnrichmentLookupFailed(AfinidadError):
    """Falló la búsqueda secundaria de perfil para una notificación."""

    def __init__(self, identity_id: str, cause: Optional[BaseException] = None):
        self.identity_id = identity_id
        self.cause = cause
        super().__init__(f"No se pudo enriquecer la notificación de {identity_id}")

"""
Script para escuchar notificaciones en vivo de un usuario.

Abre una sesión de engagement para la identidad indicada, loguea cada
notificación y los cambios en los contadores de no leídos hasta que se
interrumpe con Ctrl+C.

Uso:
    python -m afinidad.scripts.run_listener --user-id <uuid> --role seeker
"""

import argparse
import asyncio
import logging
import sys

import structlog

from afinidad.config import get_settings
from afinidad.database import create_supabase_store
from afinidad.models import Identity, Notification, Role, UnreadCounters
from afinidad.notifications import TelegramPushSink
from afinidad.session import EngagementSession

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    force=True,
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def _role(value: str) -> Role:
    role = Role.parse(value)
    if role is None:
        raise argparse.ArgumentTypeError(f"Rol inválido: {value}")
    return role


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Escucha notificaciones en vivo")
    parser.add_argument("--user-id", required=True, help="ID del usuario")
    parser.add_argument(
        "--role",
        required=True,
        type=_role,
        help="Rol del usuario: seeker/client u offerer/owner",
    )
    parser.add_argument(
        "--push",
        action="store_true",
        help="Reenviar las notificaciones al chat de Telegram configurado",
    )
    return parser.parse_args(argv)


async def run_listener(identity: Identity, push: bool = False):
    """Mantiene la sesión abierta hasta que se cancele."""
    store = await create_supabase_store(settings)
    push_sink = TelegramPushSink(settings=settings) if push else None
    session = EngagementSession(identity, store, push_sink=push_sink, settings=settings)

    def _notified(notification: Notification):
        logger.info(
            "Notificación",
            kind=notification.kind.value,
            title=notification.title,
            body=notification.body,
        )

    def _counts(counts: UnreadCounters):
        logger.info(
            "No leídos",
            likes=counts.likes,
            matches=counts.matches,
            messages=counts.messages,
        )

    def _status(live: bool):
        if live:
            logger.info("Actualizaciones en vivo activas")
        else:
            logger.warning("Actualizaciones en vivo no disponibles")

    session.ring.on_add(_notified)
    session.unread.on_change(_counts)
    session.router.on_status(_status)

    await session.start()
    try:
        await asyncio.Event().wait()
    finally:
        await session.close()


def main():
    """Entry point del script."""
    args = parse_args()
    identity = Identity(id=args.user_id, role=args.role)
    logger.info("Iniciando listener...", user_id=identity.id, role=identity.role.value)

    try:
        asyncio.run(run_listener(identity, push=args.push))
    except KeyboardInterrupt:
        logger.info("Listener interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en listener", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()

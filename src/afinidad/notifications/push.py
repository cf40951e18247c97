"""
Push de notificaciones fuera de la app.

El router llama al sink sólo si el permiso está concedido; qué significa
"permiso" depende del canal (en Telegram, que el chat exista y acepte
mensajes del bot).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import structlog
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from afinidad.config import Settings, get_settings
from afinidad.models import Notification, NotificationKind

logger = structlog.get_logger()


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


class BasePushSink(ABC):
    """Clase base para canales de push."""

    @abstractmethod
    async def request_permission(self) -> PermissionState:
        pass

    @abstractmethod
    async def present(self, notification: Notification) -> bool:
        """
        Muestra la notificación al usuario.

        Returns:
            True si se envió correctamente
        """
        pass


_EMOJIS = {
    NotificationKind.LIKE: "🔥",
    NotificationKind.SUPER_LIKE: "⭐",
    NotificationKind.MATCH: "🎉",
    NotificationKind.MESSAGE: "💬",
}


class TelegramPushSink(BasePushSink):
    """Envía las notificaciones a un chat de Telegram."""

    def __init__(
        self,
        chat_id: Optional[int] = None,
        token: Optional[str] = None,
        settings: Optional[Settings] = None,
        bot: Optional[Bot] = None,
    ):
        settings = settings or get_settings()
        self.chat_id = chat_id or settings.telegram_chat_id
        self.token = token or settings.telegram_bot_token
        self.bot = bot

    def _get_bot(self) -> Bot:
        if not self.bot:
            if not self.token:
                raise ValueError("TELEGRAM_BOT_TOKEN no configurado")
            self.bot = Bot(self.token)
        return self.bot

    async def request_permission(self) -> PermissionState:
        if not self.chat_id or not (self.token or self.bot):
            return PermissionState.DEFAULT
        try:
            await self._get_bot().get_chat(self.chat_id)
        except TelegramError as e:
            logger.warning("Chat de Telegram no disponible", chat_id=self.chat_id, error=str(e))
            return PermissionState.DENIED
        return PermissionState.GRANTED

    def format_message(self, notification: Notification) -> str:
        emoji = _EMOJIS.get(notification.kind, "🔔")
        return f"{emoji} *{notification.title}*\n\n{notification.body}"

    async def present(self, notification: Notification) -> bool:
        keyboard = None
        link = notification.payload.get("action_url")
        if link:
            keyboard = InlineKeyboardMarkup(
                [[InlineKeyboardButton("🔗 Abrir", url=link)]]
            )
        try:
            await self._get_bot().send_message(
                chat_id=self.chat_id,
                text=self.format_message(notification),
                parse_mode="Markdown",
                reply_markup=keyboard,
            )
        except TelegramError as e:
            logger.error(
                "Error enviando notificación",
                chat_id=self.chat_id,
                notification_id=notification.id,
                error=str(e),
            )
            return False

        logger.info(
            "Notificación enviada",
            chat_id=self.chat_id,
            notification_id=notification.id,
            kind=notification.kind.value,
        )
        return True

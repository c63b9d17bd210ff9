"""Operator alerts for trades that need manual attention, sent over Telegram."""

import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class OperatorAlerts:
    """Sends anomaly messages to the configured operator chats.

    Without a bot token the alerts are only logged.
    """

    def __init__(self, token: str = "", chat_ids: list[int] | None = None):
        self.token = token
        self.chat_ids = list(chat_ids or [])
        self._bot: Optional[Bot] = Bot(token) if token else None
        self._initialized = False

    @property
    def enabled(self) -> bool:
        return self._bot is not None and bool(self.chat_ids)

    async def send(self, message: str) -> int:
        """Send ``message`` to every operator chat; returns how many sends succeeded."""
        logger.warning(f"[operator] {message}")
        if not self.enabled:
            return 0

        if not self._initialized:
            try:
                await self._bot.initialize()
                self._initialized = True
            except TelegramError as e:
                logger.error(f"Telegram bot unavailable for operator alerts: {e}")
                return 0

        sent = 0
        for chat_id in self.chat_ids:
            try:
                await self._bot.send_message(chat_id=chat_id, text=message)
                sent += 1
            except TelegramError as e:
                logger.error(f"Failed to send operator alert to {chat_id}: {e}")
        return sent

    async def close(self):
        if self._initialized:
            await self._bot.shutdown()
            self._initialized = False

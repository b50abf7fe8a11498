"""Telegram notifications for automation runs"""

from typing import Optional

import aiohttp

from ..utils.logger import LoggerMixin


class NotificationError(Exception):
    """Telegram rejected or failed to deliver a message"""


class TelegramNotifier(LoggerMixin):
    """Sends plain-text messages through the Telegram Bot API"""

    def __init__(self, bot_token: str, api_base: str = "https://api.telegram.org",
                 timeout_seconds: int = 15):
        self.base_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @classmethod
    def from_config(cls, telegram_config) -> Optional["TelegramNotifier"]:
        """Build a notifier if Telegram is enabled and a bot token is available"""
        if not telegram_config.enabled:
            return None
        token = telegram_config.get_bot_token()
        if not token:
            return None
        return cls(token, telegram_config.api_base, telegram_config.timeout_seconds)

    async def send(self, chat_target: str, message: str) -> None:
        await self._api("sendMessage", {"chat_id": chat_target, "text": message})
        self.logger.debug(f"Notification sent to {chat_target}")

    async def _api(self, method: str, params: dict) -> dict:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(f"{self.base_url}/{method}", json=params) as response:
                data = await response.json(content_type=None)
                if response.status != 200 or not data.get("ok"):
                    raise NotificationError(
                        f"Telegram API error ({response.status}): {data.get('description')}"
                    )
                return data.get("result", {})

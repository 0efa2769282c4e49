"""Telegram Service - Bot API delivery for reminder notifications.
Sending is disabled (every send returns False) when no bot token is configured.
"""
import os
import logging
from typing import Optional

import httpx

from services.reminder_gateways import mask_chat_id

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/")
TELEGRAM_TIMEOUT_SECONDS = float(os.getenv("TELEGRAM_TIMEOUT_SECONDS", "10"))
# Bot API hard limit for a single text message
TELEGRAM_MAX_MESSAGE_CHARS = 4096


class TelegramService:
    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = TELEGRAM_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token if bot_token is not None else (os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def is_configured(self) -> bool:
        """Check if a bot token is available."""
        return bool(self.bot_token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, chat_id: str, text: str) -> bool:
        """Send a plain-text message to a Telegram chat.

        Args:
            chat_id: Telegram chat id of the recipient
            text: Rendered message (truncated to the Bot API limit)

        Returns:
            True only when the Bot API confirms delivery ("ok": true)
        """
        if not self.is_configured():
            logger.warning("Telegram bot token not configured; message not sent")
            return False

        if len(text) > TELEGRAM_MAX_MESSAGE_CHARS:
            text = text[: TELEGRAM_MAX_MESSAGE_CHARS - 1] + "…"

        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        try:
            response = await self._get_client().post(url, json={"chat_id": chat_id, "text": text})
        except httpx.TimeoutException:
            logger.error(f"Telegram API timeout sending to chat {mask_chat_id(chat_id)}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Telegram API transport error for chat {mask_chat_id(chat_id)}: {e}")
            return False

        if response.status_code != 200:
            logger.error(
                f"Telegram API error {response.status_code} for chat {mask_chat_id(chat_id)}: {response.text[:200]}"
            )
            return False

        try:
            body = response.json()
        except ValueError:
            logger.error(f"Telegram API returned non-JSON body for chat {mask_chat_id(chat_id)}")
            return False

        if not body.get("ok"):
            logger.error(
                f"Telegram API rejected message for chat {mask_chat_id(chat_id)}: {body.get('description')}"
            )
            return False

        logger.info(f"Telegram message sent to chat {mask_chat_id(chat_id)}")
        return True


# Singleton instance
telegram_service = TelegramService()

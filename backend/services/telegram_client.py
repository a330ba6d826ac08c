"""Telegram Bot API client.

Thin async wrapper over the Bot API HTTP interface. Every call returns a
TelegramApiResponse; network errors and timeouts are folded into
ok=False responses so callers never have to catch transport exceptions.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from config import get_settings
from models.telegram_chat import TelegramChatType

logger = logging.getLogger(__name__)
settings = get_settings()

WEBHOOK_SECRET_ALPHABET = string.ascii_letters + string.digits
WEBHOOK_SECRET_LENGTH = 32


@dataclass
class TelegramApiResponse:
    """Envelope returned by every Bot API method."""

    ok: bool
    result: Any = None
    description: Optional[str] = None
    error_code: Optional[int] = None
    transport_error: bool = False


class TelegramClient:
    """Bot API client bound to a single bot token."""

    def __init__(self, token: str, api_base: Optional[str] = None, timeout: Optional[float] = None):
        self._token = token
        self.base_url = f"{api_base or settings.telegram_api_base}/bot{token}"
        self.timeout = timeout or settings.telegram_timeout_seconds

    async def _request(self, method: str, params: Optional[dict] = None) -> TelegramApiResponse:
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=params or {})
            data = response.json()
        except Exception as e:
            logger.warning(f"Telegram {method} failed: {type(e).__name__}: {e}")
            return TelegramApiResponse(ok=False, description=str(e) or type(e).__name__, transport_error=True)

        if not data.get("ok"):
            logger.warning(
                f"Telegram {method} rejected: {data.get('error_code')} - {data.get('description')}"
            )
            return TelegramApiResponse(
                ok=False,
                description=data.get("description") or "Unknown error",
                error_code=data.get("error_code"),
            )

        logger.debug(f"Telegram {method} succeeded")
        return TelegramApiResponse(ok=True, result=data.get("result"))

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        parse_mode: Optional[str] = None,
        disable_web_page_preview: bool = False,
        reply_to_message_id: Optional[int] = None,
    ) -> TelegramApiResponse:
        """Send a text message. parse_mode is "HTML", "Markdown" or None."""
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            params["parse_mode"] = parse_mode
        if disable_web_page_preview:
            params["disable_web_page_preview"] = True
        if reply_to_message_id is not None:
            params["reply_to_message_id"] = reply_to_message_id
        return await self._request("sendMessage", params)

    async def get_me(self) -> TelegramApiResponse:
        """Verify the bot token and return the bot's own user."""
        return await self._request("getMe")

    async def set_webhook(
        self,
        url: str,
        secret_token: Optional[str] = None,
        allowed_updates: Optional[list[str]] = None,
        drop_pending_updates: bool = False,
    ) -> TelegramApiResponse:
        params: dict[str, Any] = {"url": url, "drop_pending_updates": drop_pending_updates}
        if secret_token:
            params["secret_token"] = secret_token
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        return await self._request("setWebhook", params)

    async def delete_webhook(self, drop_pending_updates: bool = False) -> TelegramApiResponse:
        return await self._request("deleteWebhook", {"drop_pending_updates": drop_pending_updates})

    async def get_webhook_info(self) -> TelegramApiResponse:
        return await self._request("getWebhookInfo")


async def verify_bot_token(token: str) -> tuple[bool, Optional[str]]:
    """Check a bot token against getMe.

    Returns (valid, bot_username_or_error).
    """
    response = await TelegramClient(token).get_me()
    if response.ok and response.result:
        return True, response.result.get("username")
    return False, response.description or "Invalid bot token"


def generate_webhook_secret() -> str:
    """Random secret for the X-Telegram-Bot-Api-Secret-Token header."""
    return "".join(secrets.choice(WEBHOOK_SECRET_ALPHABET) for _ in range(WEBHOOK_SECRET_LENGTH))


def map_chat_type(chat_type: str) -> TelegramChatType:
    """Map a Bot API chat type ("supergroup") to the stored enum."""
    return TelegramChatType(chat_type.upper())

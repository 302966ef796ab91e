from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.models import ChannelBinding, Conversation
from app.services.dispatch.base import OutboundDispatcher
from app.services.result import ErrorCode, Result

logger = get_logger("dispatch.telegram")

TELEGRAM_TEXT_LIMIT = 4096


class TelegramService:
    """Thin client for the Telegram Bot API."""

    def __init__(self, bot_token: str, api_base: Optional[str] = None):
        self.bot_token = bot_token
        self.api_base = (api_base or settings.telegram_api_base).rstrip("/")
        self.base_url = f"{self.api_base}/bot{bot_token}"

    def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=30.0) as client:
                response = client.post(url, json=data or {})
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "description": str(e)}

    def send_message(self, chat_id: str, text: str, reply_to_message_id: Optional[int] = None) -> dict:
        """Send message to Telegram chat."""
        data = {"chat_id": chat_id, "text": text[:TELEGRAM_TEXT_LIMIT]}
        if reply_to_message_id:
            data["reply_to_message_id"] = reply_to_message_id
        return self._make_request("sendMessage", data)

    def get_file_url(self, file_id: str) -> Optional[str]:
        """Resolve a file id to a downloadable URL via getFile."""
        if not file_id:
            return None
        result = self._make_request("getFile", {"file_id": file_id})
        file_path = (result.get("result") or {}).get("file_path") if result.get("ok") else None
        if not file_path:
            logger.warning("Telegram getFile returned no path", extra={"context": {"file_id": file_id}})
            return None
        return f"{self.api_base}/file/bot{self.bot_token}/{file_path}"


class TelegramDispatcher(OutboundDispatcher):
    channel = "telegram"

    def send(self, conversation: Conversation, binding: Optional[ChannelBinding], text: str) -> Result[str]:
        bot_token = binding.credential("bot_token") if binding is not None else ""
        if not bot_token:
            return Result.failure("Telegram bot token is not configured.", code=ErrorCode.NOT_CONFIGURED)
        if not conversation.channel_chat_id:
            return Result.failure("Telegram chat id is missing.", code=ErrorCode.NO_RECIPIENT)

        response = TelegramService(bot_token).send_message(conversation.channel_chat_id, text)
        if not response.get("ok"):
            return Result.failure(
                str(response.get("description") or "Telegram send failed."), code=ErrorCode.PROVIDER_ERROR
            )

        message_id = (response.get("result") or {}).get("message_id")
        return Result.success(str(message_id) if message_id is not None else None)

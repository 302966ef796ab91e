from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.models import ChannelBinding, Conversation
from app.services.dispatch.base import OutboundDispatcher
from app.services.result import ErrorCode, Result

logger = get_logger("dispatch.instagram")


class InstagramDispatcher(OutboundDispatcher):
    """Sends replies through the Instagram Graph messages endpoint."""

    channel = "instagram"

    def __init__(self, graph_base: Optional[str] = None, api_version: Optional[str] = None):
        self.graph_base = (graph_base or settings.instagram_graph_base).rstrip("/")
        self.api_version = api_version or settings.instagram_api_version

    def send(self, conversation: Conversation, binding: Optional[ChannelBinding], text: str) -> Result[str]:
        if binding is None:
            return Result.failure("Instagram channel is not connected.", code=ErrorCode.NOT_CONFIGURED)
        access_token = binding.credential("access_token")
        ig_user_id = binding.external_account_id or binding.credential("instagram_user_id")
        if not access_token or not ig_user_id:
            return Result.failure("Instagram credentials are incomplete.", code=ErrorCode.NOT_CONFIGURED)
        if not conversation.channel_user_id:
            return Result.failure("Instagram recipient is missing.", code=ErrorCode.NO_RECIPIENT)

        url = f"{self.graph_base}/{self.api_version}/{ig_user_id}/messages"
        payload = {
            "recipient": {"id": conversation.channel_user_id},
            "message": {"text": text},
            "access_token": access_token,
        }
        try:
            with httpx.Client(timeout=30.0) as client:
                response = client.post(url, json=payload)
        except httpx.HTTPError as e:
            return Result.failure(f"Instagram API error: {e}", code=ErrorCode.PROVIDER_ERROR)

        if response.status_code >= 400:
            return Result.failure(
                f"Instagram API error: {response.status_code} - {response.text[:300]}", code=ErrorCode.PROVIDER_ERROR
            )
        try:
            message_id = response.json().get("message_id")
        except ValueError:
            message_id = None
        return Result.success(str(message_id) if message_id else None)

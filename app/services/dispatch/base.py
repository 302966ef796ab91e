from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

from app.models import ChannelBinding, Conversation
from app.services.result import Result


class OutboundDispatcher(ABC):
    """Delivers a stored outbound message to the customer's channel."""

    channel: str = ""
    # Remote channels receive text only; attachments stay in the message store.
    supports_media: bool = False

    @abstractmethod
    def send(self, conversation: Conversation, binding: Optional[ChannelBinding], text: str) -> Result[str]:
        """Send text; the result value is the provider message id."""
        pass


class LocalDispatcher(OutboundDispatcher):
    """Channels whose clients poll the message store (widget, api, internal test)."""

    supports_media = True

    def __init__(self, channel: str):
        self.channel = channel

    def send(self, conversation: Conversation, binding: Optional[ChannelBinding], text: str) -> Result[str]:
        return Result.success(f"local-{uuid4().hex}")

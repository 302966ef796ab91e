from typing import Optional

from app.logging_config import get_logger
from app.models import ChannelBinding, Conversation, Message
from app.services.channels.registry import INTERNAL_TEST_CHANNEL
from app.services.dispatch.base import LocalDispatcher, OutboundDispatcher
from app.services.dispatch.instagram import InstagramDispatcher
from app.services.dispatch.telegram import TelegramDispatcher
from app.services.message_service import mark_delivery
from app.services.result import ErrorCode, Result

logger = get_logger("dispatch")


class DispatcherRegistry:
    def __init__(self):
        self._dispatchers: dict[str, OutboundDispatcher] = {}

    def register(self, dispatcher: OutboundDispatcher) -> None:
        self._dispatchers[dispatcher.channel] = dispatcher

    def get(self, channel: str) -> Optional[OutboundDispatcher]:
        return self._dispatchers.get(channel)

    def deliver(self, db, conversation: Conversation, binding: Optional[ChannelBinding], message: Message) -> Result[str]:
        """Send a stored outbound message and record the outcome on it.

        Delivery failures never raise; the message stays stored and is marked failed.
        """
        dispatcher = self.get(conversation.channel)
        text = (message.text or "").strip()
        if dispatcher is None:
            result = Result.failure(f"No dispatcher for channel {conversation.channel}", code=ErrorCode.UNSUPPORTED)
        elif not text and not dispatcher.supports_media:
            result = Result.failure(
                f"Attachments cannot be sent to {conversation.channel}", code=ErrorCode.UNSUPPORTED_MEDIA
            )
        else:
            if message.media_url and not dispatcher.supports_media:
                logger.info(
                    "Attachment kept in the message store, sending text only",
                    extra={"context": {"message_id": message.id, "channel": conversation.channel}},
                )
            try:
                result = dispatcher.send(conversation, binding, text)
            except Exception as e:
                logger.exception("Dispatcher raised", extra={"context": {"message_id": message.id}})
                result = Result.failure(str(e), code=ErrorCode.EXCEPTION)

        if not result.ok:
            logger.warning(
                f"Outbound delivery failed: {result.error}",
                extra={
                    "context": {
                        "conversation_id": conversation.id,
                        "message_id": message.id,
                        "channel": conversation.channel,
                        "error_code": result.error_code,
                        "transient": result.transient,
                    }
                },
            )
        mark_delivery(db, message, provider_message_id=result.value, failed=not result.ok)
        return result


def build_default_registry() -> DispatcherRegistry:
    registry = DispatcherRegistry()
    registry.register(TelegramDispatcher())
    registry.register(InstagramDispatcher())
    for channel in ("widget", "api", INTERNAL_TEST_CHANNEL):
        registry.register(LocalDispatcher(channel))
    return registry


dispatcher_registry = build_default_registry()

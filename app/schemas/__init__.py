from app.schemas.chat import (
    AssistantReplyRequest,
    AssistantTestChatsResponse,
    ChatMessageOut,
    ChatOut,
    IngestionResponse,
    MarkReadResponse,
    MessageListResponse,
    OkResponse,
    WidgetConfig,
    WidgetMessagesResponse,
)
from app.schemas.inbound import ApiWebhookIn, WidgetMessageIn
from app.schemas.telegram import TelegramMessage, TelegramUpdate

__all__ = [
    "ApiWebhookIn",
    "AssistantReplyRequest",
    "AssistantTestChatsResponse",
    "ChatMessageOut",
    "ChatOut",
    "IngestionResponse",
    "MarkReadResponse",
    "MessageListResponse",
    "OkResponse",
    "TelegramMessage",
    "TelegramUpdate",
    "WidgetConfig",
    "WidgetMessageIn",
    "WidgetMessagesResponse",
]

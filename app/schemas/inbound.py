"""Request bodies accepted by the widget and the generic JSON webhook."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.services.timeutils import parse_datetime

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
HTTP_URL_PATTERN = r"(?i)^https?://\S+$"

ChatStatus = Literal["open", "pending", "closed", "archived"]
SenderType = Literal["customer", "assistant", "agent", "system"]
Direction = Literal["inbound", "outbound"]
MessageType = Literal["text", "image", "video", "voice", "audio", "link", "file"]


def compact_payload(data: Any) -> Any:
    """Strip strings and drop blank or null values so they read as absent."""
    if not isinstance(data, dict):
        return data
    compacted = {}
    for key, value in data.items():
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if value is None:
            continue
        compacted[key] = value
    return compacted


class _InboundModel(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class WidgetMessageIn(_InboundModel):
    session_id: str = Field(max_length=191)
    text: Optional[str] = Field(default=None, max_length=20000)
    visitor_name: Optional[str] = Field(default=None, max_length=160)
    visitor_email: Optional[str] = Field(default=None, max_length=191, pattern=EMAIL_PATTERN)
    visitor_phone: Optional[str] = Field(default=None, max_length=64)
    page_url: Optional[str] = Field(default=None, max_length=2048, pattern=HTTP_URL_PATTERN)
    client_message_id: Optional[str] = Field(default=None, max_length=191)

    @model_validator(mode="before")
    @classmethod
    def _compact(cls, data: Any) -> Any:
        return compact_payload(data)


def _section(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


class ApiWebhookIn(_InboundModel):
    """Generic webhook body.

    Fields may come flat or nested under ``chat``, ``message`` and ``sender``
    objects; a flat key always wins over its nested counterpart.
    """

    company_id: Optional[int] = None
    assistant_id: Optional[int] = None
    assistant_channel_id: Optional[int] = None
    channel_chat_id: Optional[str] = Field(default=None, max_length=191)
    channel_user_id: Optional[str] = Field(default=None, max_length=191)
    name: Optional[str] = Field(default=None, max_length=160)
    avatar: Optional[str] = Field(default=None, max_length=2048)
    status: Optional[ChatStatus] = None
    sender_type: SenderType = "customer"
    direction: Direction = "inbound"
    channel_message_id: Optional[str] = Field(default=None, max_length=191)
    message_type: Optional[MessageType] = None
    text: Optional[str] = Field(default=None, max_length=20000)
    media_url: Optional[str] = Field(default=None, max_length=2048)
    media_mime_type: Optional[str] = Field(default=None, max_length=191)
    media_size: Optional[int] = Field(default=None, ge=0)
    link_url: Optional[str] = Field(default=None, max_length=2048)
    attachments: Optional[list] = None
    metadata: Optional[dict] = None
    payload: Optional[dict] = None
    status_message: str = Field(default="received", max_length=32)
    sent_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        chat = compact_payload(_section(data, "chat"))
        message = compact_payload(_section(data, "message"))
        sender = compact_payload(_section(data, "sender"))

        merged = compact_payload(
            {
                "company_id": chat.get("company_id"),
                "assistant_id": chat.get("assistant_id"),
                "assistant_channel_id": chat.get("assistant_channel_id"),
                "channel_chat_id": chat.get("id", chat.get("chat_id")),
                "channel_user_id": chat.get("user_id", sender.get("id")),
                "name": chat.get("name", sender.get("name")),
                "avatar": chat.get("avatar", sender.get("avatar")),
                "status": chat.get("status"),
                "sender_type": message.get("sender_type"),
                "direction": message.get("direction"),
                "channel_message_id": message.get("id"),
                "message_type": message.get("type"),
                "text": message.get("text"),
                "media_url": message.get("media_url"),
                "media_mime_type": message.get("media_mime_type"),
                "media_size": message.get("media_size"),
                "link_url": message.get("link_url"),
                "status_message": message.get("status"),
                "sent_at": message.get("sent_at"),
            }
        )

        for key, value in compact_payload(data).items():
            if key in cls.model_fields and key not in ("attachments", "metadata", "payload"):
                merged[key] = value

        if isinstance(data.get("attachments"), list):
            merged["attachments"] = data["attachments"]
        elif isinstance(message.get("attachments"), list):
            merged["attachments"] = message["attachments"]

        if isinstance(data.get("metadata"), dict):
            merged["metadata"] = data["metadata"]
        elif isinstance(chat.get("metadata"), dict):
            merged["metadata"] = chat["metadata"]

        if isinstance(data.get("payload"), dict):
            merged["payload"] = data["payload"]
        elif message:
            merged["payload"] = _section(data, "message")

        return merged

    @field_validator("sent_at", mode="before")
    @classmethod
    def _parse_sent_at(cls, value: Any) -> Any:
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError("The sent_at field must be a valid date.")
        return parsed

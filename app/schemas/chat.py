from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.services.timeutils import as_utc


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return as_utc(value)
        return value


class ChatOut(_OrmModel):
    id: int
    company_id: int
    assistant_id: Optional[int] = None
    assistant_channel_id: Optional[int] = None
    channel: str
    channel_chat_id: str
    channel_user_id: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    status: str
    unread_count: int = 0
    last_message_preview: Optional[str] = None
    last_message_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("chat_metadata", "metadata"))


class ChatMessageOut(_OrmModel):
    id: int
    chat_id: int
    assistant_id: Optional[int] = None
    sender_type: str
    direction: str
    status: str
    channel_message_id: Optional[str] = None
    message_type: str
    text: Optional[str] = None
    media_url: Optional[str] = None
    media_mime_type: Optional[str] = None
    media_size: Optional[int] = None
    link_url: Optional[str] = None
    attachments: Optional[list] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class IngestionResponse(BaseModel):
    message: str
    chat: ChatOut
    chat_message: ChatMessageOut
    assistant_message: Optional[ChatMessageOut] = None
    duplicate: bool = False


class MessageListResponse(BaseModel):
    chat: ChatOut
    messages: list[ChatMessageOut]


class AssistantReplyRequest(BaseModel):
    prompt: Optional[str] = None


class MarkReadResponse(BaseModel):
    message: str
    updated: int
    chat: ChatOut


class AssistantTestChatsResponse(BaseModel):
    message: str
    created: int
    chats: list[ChatOut]


class WidgetConfig(BaseModel):
    widget_key: str
    company_name: str
    assistant_name: Optional[str] = None
    position: str = "bottom-right"
    theme: str = "light"
    primary_color: str = "#1677FF"
    title: str
    welcome_message: Optional[str] = None
    placeholder: Optional[str] = None
    launcher_label: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


class WidgetMessagesResponse(BaseModel):
    session_id: str
    chat_id: Optional[int] = None
    messages: list[ChatMessageOut] = Field(default_factory=list)

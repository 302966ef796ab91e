from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class TelegramUser(BaseModel):
    id: Optional[int] = None
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: Optional[int] = None
    type: Optional[str] = None  # private, group, supergroup, channel
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramPhotoSize(BaseModel):
    file_id: Optional[str] = None
    file_size: Optional[int] = None


class TelegramFile(BaseModel):
    """Video, voice, audio and document share these fields."""

    file_id: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class TelegramMessage(BaseModel):
    message_id: Optional[int] = None
    date: Optional[int] = None
    chat: Optional[TelegramChat] = None
    from_user: Optional[TelegramUser] = Field(
        default=None,
        validation_alias=AliasChoices("from", "from_user"),  # "from" is reserved in Python
    )
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[list[TelegramPhotoSize]] = None
    video: Optional[TelegramFile] = None
    voice: Optional[TelegramFile] = None
    audio: Optional[TelegramFile] = None
    document: Optional[TelegramFile] = None


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None
    channel_post: Optional[TelegramMessage] = None
    edited_channel_post: Optional[TelegramMessage] = None

    @property
    def event(self) -> Optional[TelegramMessage]:
        return self.message or self.edited_message or self.channel_post or self.edited_channel_post

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from app.logging_config import get_logger
from app.models import Message
from app.schemas.telegram import TelegramMessage, TelegramUpdate
from app.services.channels.base import (
    PART_EVENT,
    PART_MEDIA,
    PART_TEXT,
    ChannelAdapter,
    InboundEvent,
    InboundPart,
    RawInbound,
    tokens_match,
)
from app.services.content import classify_content, limit_text, nullable_str, part_message_id, short_hash
from app.services.errors import Forbidden
from app.services.timeutils import from_epoch

logger = get_logger("telegram_adapter")

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
EVENT_PLACEHOLDER = "Telegram event received"

# (message attribute, part suffix, message type)
MEDIA_FIELDS = (
    ("video", "video", Message.TYPE_VIDEO),
    ("voice", "voice", Message.TYPE_VOICE),
    ("audio", "audio", Message.TYPE_AUDIO),
    ("document", "document", Message.TYPE_FILE),
)


def extract_display_name(event: TelegramMessage) -> Optional[str]:
    sender = event.from_user
    chat = event.chat

    def pick(attribute: str) -> str:
        value = getattr(sender, attribute, None) or getattr(chat, attribute, None)
        return str(value or "").strip()

    first_name = pick("first_name")
    last_name = pick("last_name")
    username = pick("username")
    title = str(getattr(chat, "title", None) or "").strip()

    name = f"{first_name} {last_name}".strip()
    if not name and title:
        name = title
    if not name and username:
        name = f"@{username}"
    if not name:
        return None
    return limit_text(name, 160, suffix="")


class TelegramAdapter(ChannelAdapter):
    name = "telegram"

    def authorize(self, raw: RawInbound) -> None:
        binding = raw.binding
        expected = binding.credential("webhook_secret") if binding is not None else ""
        if not expected:
            return
        if not tokens_match(expected, raw.header(SECRET_HEADER)):
            raise Forbidden("Invalid Telegram webhook secret.")

    def normalize(self, raw: RawInbound) -> Optional[InboundEvent]:
        self.authorize(raw)

        try:
            update = TelegramUpdate.model_validate(raw.payload or {})
        except ValidationError as e:
            logger.warning(
                f"Invalid Telegram update: {e.error_count()} errors",
                extra={"context": {"binding_id": getattr(raw.binding, "id", None)}},
            )
            return None

        event = update.event
        if event is None or event.chat is None:
            return None

        sender = event.from_user
        if sender is not None and sender.is_bot:
            return None

        chat_id = nullable_str(event.chat.id)
        sender_id = nullable_str(sender.id if sender is not None else None) or chat_id
        if chat_id is None or sender_id is None:
            return None

        parts = self._parts(event, update, raw)

        binding = raw.binding
        telegram_info = {
            "assistant_channel_id": getattr(binding, "id", None),
            "chat_id": chat_id,
            "chat_type": nullable_str(event.chat.type),
            "bot_id": binding.credential("bot_id") if binding is not None else None,
            "bot_username": binding.credential("bot_username") if binding is not None else None,
        }

        return InboundEvent(
            channel=self.name,
            external_chat_id=chat_id,
            external_user_id=sender_id,
            name=extract_display_name(event),
            default_name=f"Telegram {sender_id}",
            metadata={
                "source": "telegram_webhook",
                "telegram": {key: value for key, value in telegram_info.items() if value not in (None, "")},
            },
            parts=parts,
        )

    def _parts(self, event: TelegramMessage, update: TelegramUpdate, raw: RawInbound) -> list[InboundPart]:
        payload = raw.payload
        sent_at = from_epoch(event.date)
        base_id = nullable_str(event.message_id) or nullable_str(update.update_id)
        if base_id is None:
            base_id = "tg-" + short_hash(event.model_dump(mode="json", exclude_none=True))

        def file_url(file_id: Optional[str]) -> Optional[str]:
            file_id = nullable_str(file_id)
            if not file_id or raw.file_url_resolver is None:
                return None
            return raw.file_url_resolver(file_id)

        parts: list[InboundPart] = []

        text = nullable_str(event.text) or nullable_str(event.caption)
        if text:
            message_type, link_url = classify_content(text)
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, "text"),
                    message_type=message_type,
                    text=text,
                    link_url=link_url if message_type == Message.TYPE_LINK else None,
                    payload=payload,
                    sent_at=sent_at,
                    kind=PART_TEXT,
                )
            )

        if event.photo:
            largest = event.photo[-1]
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, "photo"),
                    message_type=Message.TYPE_IMAGE,
                    media_url=file_url(largest.file_id),
                    media_size=largest.file_size,
                    payload=payload,
                    sent_at=sent_at,
                    kind=PART_MEDIA,
                )
            )

        for attribute, suffix, message_type in MEDIA_FIELDS:
            media = getattr(event, attribute)
            if media is None:
                continue
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, suffix),
                    message_type=message_type,
                    media_url=file_url(media.file_id),
                    media_mime_type=nullable_str(media.mime_type),
                    media_size=media.file_size,
                    payload=payload,
                    sent_at=sent_at,
                    kind=PART_MEDIA,
                )
            )

        if not parts:
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, "event"),
                    message_type=Message.TYPE_TEXT,
                    text=EVENT_PLACEHOLDER,
                    payload=payload,
                    sent_at=sent_at,
                    kind=PART_EVENT,
                )
            )

        return parts

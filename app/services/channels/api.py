"""Generic JSON webhook used by API integrations for any supported channel."""

from __future__ import annotations

from typing import Optional

from app.models import Message
from app.schemas.inbound import ApiWebhookIn
from app.services.channels.base import (
    PART_MEDIA,
    PART_TEXT,
    ChannelAdapter,
    InboundEvent,
    InboundPart,
    RawInbound,
    tokens_match,
    validate_payload,
)
from app.services.content import classify_content, synthesize_chat_id
from app.services.errors import Unauthorized
from app.services.timeutils import utcnow


class ApiWebhookAdapter(ChannelAdapter):
    name = "api"

    def authorize(self, raw: RawInbound) -> None:
        expected = (raw.expected_token or "").strip()
        if not expected:
            return
        provided = raw.header("X-Webhook-Token") or raw.payload.get("token")
        if not tokens_match(expected, provided):
            raise Unauthorized("Invalid webhook token.")

    def normalize(self, raw: RawInbound) -> Optional[InboundEvent]:
        self.authorize(raw)

        body = validate_payload(ApiWebhookIn, raw.payload or {})

        channel_chat_id = body.channel_chat_id or body.channel_user_id
        if channel_chat_id is None:
            channel_chat_id = synthesize_chat_id(
                body.company_id or raw.company_id, raw.channel, body.channel_message_id, body.name, body.text
            )

        text = body.text
        link_url = body.link_url
        if body.message_type is not None:
            message_type, detected_link = body.message_type, None
            if body.message_type == Message.TYPE_TEXT and text:
                message_type, detected_link = classify_content(text)
        else:
            message_type, detected_link = classify_content(text, file_mime_type=body.media_mime_type)
        if message_type == Message.TYPE_LINK and link_url is None:
            link_url = detected_link

        part = InboundPart(
            external_message_id=body.channel_message_id,
            message_type=message_type,
            text=text,
            media_url=body.media_url,
            media_mime_type=body.media_mime_type,
            media_size=body.media_size,
            link_url=link_url,
            attachments=body.attachments,
            payload=body.payload,
            sent_at=body.sent_at or utcnow(),
            kind=PART_TEXT if message_type in {Message.TYPE_TEXT, Message.TYPE_LINK} else PART_MEDIA,
            sender_type=body.sender_type,
            direction=body.direction,
            status=body.status_message,
        )

        return InboundEvent(
            channel=raw.channel,
            external_chat_id=channel_chat_id,
            external_user_id=body.channel_user_id,
            name=body.name,
            avatar=body.avatar,
            status=body.status,
            metadata=body.metadata or {},
            parts=[part],
            company_id=body.company_id,
            assistant_id=body.assistant_id,
            assistant_channel_id=body.assistant_channel_id,
        )

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from app.models import Message
from app.services.channels.base import (
    PART_EVENT,
    PART_MEDIA,
    PART_TEXT,
    ChannelAdapter,
    InboundEvent,
    InboundPart,
    RawInbound,
)
from app.services.content import classify_content, nullable_str, part_message_id, short_hash
from app.services.timeutils import from_epoch

SIGNATURE_HEADER = "X-Hub-Signature-256"

ATTACHMENT_TYPES = {
    "image": Message.TYPE_IMAGE,
    "story_mention": Message.TYPE_IMAGE,
    "story_reply": Message.TYPE_IMAGE,
    "video": Message.TYPE_VIDEO,
    "audio": Message.TYPE_VOICE,
    "file": Message.TYPE_FILE,
    "share": Message.TYPE_LINK,
}


def verify_signature(body: bytes, signature_header: Optional[str], app_secret: Optional[str]) -> bool:
    """Check Meta's ``sha256=<hex>`` body signature. No secret configured means no check."""
    if not app_secret:
        return True
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.split("=", 1)[1])


def iter_messaging_events(body: dict):
    for entry in body.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for event in entry.get("messaging") or []:
            if isinstance(event, dict):
                yield event


def extract_sender_id(event: dict) -> Optional[str]:
    sender = event.get("sender") if isinstance(event.get("sender"), dict) else {}
    return nullable_str(sender.get("id"))


def extract_recipient_id(event: dict) -> Optional[str]:
    recipient = event.get("recipient") if isinstance(event.get("recipient"), dict) else {}
    return nullable_str(recipient.get("id"))


def is_echo_event(event: dict) -> bool:
    message = event.get("message") if isinstance(event.get("message"), dict) else {}
    return bool(message.get("is_echo") or event.get("is_echo"))


def summarize_payload(payload: dict) -> Optional[str]:
    if "reaction" in payload:
        reaction = payload.get("reaction") if isinstance(payload.get("reaction"), dict) else {}
        value = str(reaction.get("reaction") or reaction.get("emoji") or "").strip()
        return f"Reaction: {value}" if value else "Reaction received"
    if "read" in payload:
        return "Message seen"
    if "postback" in payload:
        postback = payload.get("postback") if isinstance(payload.get("postback"), dict) else {}
        title = str(postback.get("title") or "").strip()
        return f"Postback: {title}" if title else "Postback received"
    return None


def extract_attachment_url(payload: dict) -> Optional[str]:
    for key in ("url", "attachment_url", "link", "href"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class InstagramAdapter(ChannelAdapter):
    """Meta messaging events for Instagram business accounts."""

    name = "instagram"

    def normalize(self, raw: RawInbound) -> Optional[InboundEvent]:
        event = raw.payload or {}
        if is_echo_event(event):
            return None

        sender_id = extract_sender_id(event)
        recipient_id = extract_recipient_id(event)
        if sender_id is None or recipient_id is None:
            return None

        parts = self._parts(event)
        if not parts:
            return None

        binding = raw.binding
        instagram_info = {
            "assistant_channel_id": getattr(binding, "id", None),
            "instagram_user_id": sender_id,
            "receiver_id": recipient_id,
        }

        return InboundEvent(
            channel=self.name,
            external_chat_id=f"{recipient_id}:{sender_id}",
            external_user_id=sender_id,
            default_name=f"Instagram {sender_id}",
            metadata={
                "source": "meta_instagram_webhook",
                "instagram": {key: value for key, value in instagram_info.items() if value is not None},
            },
            parts=parts,
        )

    def _parts(self, event: dict) -> list[InboundPart]:
        message = event.get("message") if isinstance(event.get("message"), dict) else {}
        sent_at = from_epoch(event.get("timestamp"))

        base_id = nullable_str(message.get("mid")) or nullable_str(event.get("mid"))
        if base_id is None:
            base_id = "ig-" + short_hash(
                {
                    "sender": event.get("sender"),
                    "recipient": event.get("recipient"),
                    "timestamp": event.get("timestamp"),
                    "message": message,
                }
            )

        parts: list[InboundPart] = []

        text = nullable_str(message.get("text"))
        if text:
            message_type, link_url = classify_content(text)
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, "text"),
                    message_type=message_type,
                    text=text,
                    link_url=link_url,
                    payload=event,
                    sent_at=sent_at,
                    kind=PART_TEXT,
                )
            )

        attachments = message.get("attachments") if isinstance(message.get("attachments"), list) else []
        for index, attachment in enumerate(attachments):
            if not isinstance(attachment, dict):
                continue
            attachment_type = str(attachment.get("type") or "").strip().lower()
            attachment_payload = attachment.get("payload") if isinstance(attachment.get("payload"), dict) else {}
            message_type = ATTACHMENT_TYPES.get(attachment_type, Message.TYPE_FILE)
            url = extract_attachment_url(attachment_payload)
            parts.append(
                InboundPart(
                    external_message_id=part_message_id(base_id, f"attachment-{index}"),
                    message_type=message_type,
                    media_url=url if message_type != Message.TYPE_LINK else None,
                    link_url=url if message_type == Message.TYPE_LINK else None,
                    text=nullable_str(attachment_payload.get("title")) if message_type == Message.TYPE_LINK else None,
                    attachments=[attachment],
                    payload=event,
                    sent_at=sent_at,
                    kind=PART_TEXT if message_type == Message.TYPE_LINK else PART_MEDIA,
                )
            )

        if not parts:
            summary = summarize_payload(event)
            if summary:
                parts.append(
                    InboundPart(
                        external_message_id=part_message_id(base_id, "event"),
                        message_type=Message.TYPE_TEXT,
                        text=summary,
                        payload=event,
                        sent_at=sent_at,
                        kind=PART_EVENT,
                    )
                )

        return parts

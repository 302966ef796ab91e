from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, Message
from app.services.channels.base import InboundPart
from app.services.content import message_preview
from app.services.timeutils import utcnow
from app.services.upsert import insert_or_ignore

logger = get_logger("message_service")

DEFAULT_POLL_LIMIT = 80
MAX_POLL_LIMIT = 120


@dataclass
class AppendResult:
    message: Message
    created: bool


def _message_values(conversation: Conversation, part: InboundPart, assistant_id: Optional[int]) -> dict:
    return {
        "company_id": conversation.company_id,
        "chat_id": conversation.id,
        "assistant_id": assistant_id,
        "sender_type": part.sender_type,
        "direction": part.direction,
        "status": part.status,
        "channel_message_id": part.external_message_id,
        "message_type": part.message_type,
        "text": part.text,
        "media_url": part.media_url,
        "media_mime_type": part.media_mime_type,
        "media_size": part.media_size,
        "link_url": part.link_url,
        "attachments": part.attachments,
        "payload": part.payload,
        "sent_at": part.sent_at or utcnow(),
    }


def append_message(
    db: Session,
    conversation: Conversation,
    part: InboundPart,
    *,
    assistant_id: Optional[int] = None,
) -> AppendResult:
    """Store one turn; a known external id returns the stored row with ``created=False``."""
    values = _message_values(conversation, part, assistant_id)

    if part.external_message_id:
        db.flush()
        created = insert_or_ignore(db, Message, values, index_elements=["chat_id", "channel_message_id"])
        message = (
            db.query(Message)
            .filter(Message.chat_id == conversation.id, Message.channel_message_id == part.external_message_id)
            .one()
        )
        if not created:
            logger.info(
                "Duplicate message skipped",
                extra={
                    "context": {
                        "conversation_id": conversation.id,
                        "channel_message_id": part.external_message_id,
                    }
                },
            )
            return AppendResult(message=message, created=False)
    else:
        message = Message(**values)
        db.add(message)
        db.flush()

    touch_snapshot(db, conversation, message)
    return AppendResult(message=message, created=True)


def touch_snapshot(db: Session, conversation: Conversation, message: Message) -> None:
    conversation.last_message_preview = message_preview(message.text, message.message_type)
    conversation.last_message_at = message.sent_at or utcnow()
    if message.is_inbound_customer:
        conversation.unread_count = Conversation.unread_count + 1
    db.flush()


def store_outbound_message(
    db: Session,
    conversation: Conversation,
    *,
    text: Optional[str],
    sender_type: str = Message.SENDER_ASSISTANT,
    assistant_id: Optional[int] = None,
    status: str = "sent",
    message_type: str = Message.TYPE_TEXT,
    media_url: Optional[str] = None,
    media_mime_type: Optional[str] = None,
    media_size: Optional[int] = None,
    attachments: Optional[list] = None,
    channel_message_id: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> Message:
    message = Message(
        company_id=conversation.company_id,
        chat_id=conversation.id,
        assistant_id=assistant_id,
        sender_type=sender_type,
        direction=Message.DIRECTION_OUTBOUND,
        status=status,
        channel_message_id=channel_message_id,
        message_type=message_type,
        text=text,
        media_url=media_url,
        media_mime_type=media_mime_type,
        media_size=media_size,
        attachments=attachments,
        sent_at=sent_at or utcnow(),
    )
    db.add(message)
    db.flush()
    touch_snapshot(db, conversation, message)
    return message


def mark_delivery(db: Session, message: Message, *, provider_message_id: Optional[str], failed: bool) -> None:
    now = utcnow()
    if failed:
        message.status = "failed"
        message.failed_at = now
    else:
        message.status = "sent"
        message.delivered_at = now
        if provider_message_id:
            message.channel_message_id = provider_message_id
    db.flush()


def mark_read(db: Session, conversation: Conversation) -> int:
    """Flag unread inbound messages as read and zero the counter. Safe to repeat."""
    now = utcnow()
    updated = (
        db.query(Message)
        .filter(
            Message.chat_id == conversation.id,
            Message.direction == Message.DIRECTION_INBOUND,
            Message.read_at.is_(None),
        )
        .update({Message.read_at: now, Message.status: "read"}, synchronize_session=False)
    )
    conversation.unread_count = 0
    db.flush()
    db.expire_all()
    return updated


def reset_unread(db: Session, conversation: Conversation) -> None:
    conversation.unread_count = 0
    db.flush()


def list_messages(
    db: Session,
    conversation: Conversation,
    *,
    after_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[Message]:
    limit = DEFAULT_POLL_LIMIT if not limit else max(1, min(int(limit), MAX_POLL_LIMIT))
    query = db.query(Message).filter(Message.chat_id == conversation.id)
    if after_id:
        query = query.filter(Message.id > after_id)
    return query.order_by(Message.id).limit(limit).all()

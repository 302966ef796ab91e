from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Assistant, Company, Conversation, Message
from app.schemas.chat_metadata import merge_chat_metadata
from app.services.channels.registry import INTERNAL_TEST_CHANNEL
from app.services.content import nullable_str
from app.services.errors import NotFound
from app.services.timeutils import utcnow
from app.services.upsert import insert_or_ignore

logger = get_logger("conversation_service")

AUTO_REPLY_STATUSES = {Conversation.STATUS_OPEN, Conversation.STATUS_PENDING}
TEST_CHAT_PREVIEW = "Assistant test chat is ready."


def resolve_conversation(
    db: Session,
    *,
    company_id: int,
    channel: str,
    external_chat_id: str,
    external_user_id: Optional[str] = None,
    assistant_id: Optional[int] = None,
    default_assistant_id: Optional[int] = None,
    assistant_channel_id: Optional[int] = None,
    name: Optional[str] = None,
    default_name: Optional[str] = None,
    avatar: Optional[str] = None,
    status: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Conversation:
    """Find or create the conversation for (company, channel, external chat id).

    ``assistant_id`` rebinds the conversation; ``default_assistant_id`` only
    binds a conversation that has no assistant yet.
    """
    db.flush()
    created = insert_or_ignore(
        db,
        Conversation,
        {
            "company_id": company_id,
            "channel": channel,
            "channel_chat_id": external_chat_id,
            "status": Conversation.STATUS_OPEN,
            "unread_count": 0,
        },
        index_elements=["company_id", "channel", "channel_chat_id"],
    )

    conversation = (
        db.query(Conversation)
        .filter(
            Conversation.company_id == company_id,
            Conversation.channel == channel,
            Conversation.channel_chat_id == external_chat_id,
        )
        .populate_existing()
        .one()
    )

    if created:
        logger.info(
            "Conversation created",
            extra={"context": {"conversation_id": conversation.id, "channel": channel, "company_id": company_id}},
        )

    if external_user_id:
        conversation.channel_user_id = external_user_id

    if assistant_id is not None and conversation.assistant_id != assistant_id:
        conversation.assistant_id = assistant_id
    elif conversation.assistant_id is None and default_assistant_id is not None:
        conversation.assistant_id = default_assistant_id

    if assistant_channel_id is not None:
        conversation.assistant_channel_id = assistant_channel_id

    incoming_name = nullable_str(name, max_length=160)
    if incoming_name:
        conversation.name = incoming_name
    elif not conversation.name and default_name:
        conversation.name = default_name

    incoming_avatar = nullable_str(avatar, max_length=2048)
    if incoming_avatar:
        conversation.avatar = incoming_avatar

    if status:
        conversation.status = status
    elif not conversation.status:
        conversation.status = Conversation.STATUS_OPEN

    if metadata:
        conversation.chat_metadata = merge_chat_metadata(conversation.chat_metadata, metadata)

    db.flush()
    return conversation


def get_company_conversation(db: Session, company_id: int, conversation_id: int) -> Conversation:
    conversation = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.company_id == company_id)
        .first()
    )
    if conversation is None:
        raise NotFound("Chat not found.")
    return conversation


def is_active_for_auto_reply(conversation: Conversation) -> bool:
    metadata = conversation.chat_metadata or {}
    if metadata.get("is_active") is False:
        return False
    return conversation.status in AUTO_REPLY_STATUSES


def resolve_assistant(
    db: Session,
    company_id: int,
    *,
    explicit_id: Optional[int] = None,
    conversation: Optional[Conversation] = None,
) -> Optional[Assistant]:
    """Explicit assistant if active, else the conversation's, else the company's first active one."""
    base = db.query(Assistant).filter(Assistant.company_id == company_id, Assistant.is_active.is_(True))

    if explicit_id is not None:
        assistant = base.filter(Assistant.id == explicit_id).first()
        if assistant is not None:
            return assistant

    if conversation is not None and conversation.assistant_id is not None:
        assistant = base.filter(Assistant.id == conversation.assistant_id).first()
        if assistant is not None:
            return assistant

    return base.order_by(Assistant.id).first()


def ensure_assistant_test_chats(db: Session, company: Company) -> list[Conversation]:
    """Give every active assistant a self-test conversation and drop orphaned ones."""
    assistant_ids = [row.id for row in db.query(Assistant.id).filter(Assistant.company_id == company.id)]

    orphan_ids = [
        row.id
        for row in db.query(Conversation.id).filter(
            Conversation.company_id == company.id,
            Conversation.channel == INTERNAL_TEST_CHANNEL,
            or_(Conversation.assistant_id.is_(None), Conversation.assistant_id.notin_(assistant_ids or [-1])),
        )
    ]
    if orphan_ids:
        db.query(Message).filter(Message.chat_id.in_(orphan_ids)).delete(synchronize_session=False)
        db.query(Conversation).filter(Conversation.id.in_(orphan_ids)).delete(synchronize_session=False)
        logger.info(
            "Removed orphaned test chats",
            extra={"context": {"company_id": company.id, "removed": len(orphan_ids)}},
        )

    created: list[Conversation] = []
    assistants = (
        db.query(Assistant)
        .filter(Assistant.company_id == company.id, Assistant.is_active.is_(True))
        .order_by(Assistant.id)
        .all()
    )
    for assistant in assistants:
        has_chats = (
            db.query(Conversation.id)
            .filter(Conversation.company_id == company.id, Conversation.assistant_id == assistant.id)
            .first()
        )
        if has_chats:
            continue

        conversation = resolve_conversation(
            db,
            company_id=company.id,
            channel=INTERNAL_TEST_CHANNEL,
            external_chat_id=f"assistant-test-{assistant.id}",
            external_user_id=f"assistant-{assistant.id}",
            assistant_id=assistant.id,
            name=nullable_str(assistant.name) or f"Assistant #{assistant.id}",
            metadata={
                "is_test_chat": True,
                "assistant_test_chat": True,
                "assistant_id": assistant.id,
            },
        )
        conversation.last_message_preview = TEST_CHAT_PREVIEW
        conversation.last_message_at = utcnow()
        created.append(conversation)

    db.flush()
    return created

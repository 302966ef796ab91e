"""Inbound pipeline: conversation, dedup, quota, auto-reply and dispatch.

One request commits once at the end. The reply path may commit earlier when it
records a new provider thread or remote assistant.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger
from app.models import Assistant, ChannelBinding, Company, Conversation, Message
from app.services.channels.base import PART_MEDIA, PART_TEXT, InboundEvent, InboundPart, UploadedFile
from app.services.content import classify_content, content_type_from_mime, nullable_str
from app.services.conversation_service import is_active_for_auto_reply, resolve_assistant, resolve_conversation
from app.services.dispatch import DispatcherRegistry, dispatcher_registry
from app.services.errors import ValidationFailed
from app.services.media_storage import store_upload
from app.services.message_service import append_message, reset_unread, store_outbound_message
from app.services.reply_service import ReplyOrchestrator
from app.services.timeutils import utcnow
from app.services.usage_service import QuotaGate, gate, record_usage

logger = get_logger("ingestion_service")


@dataclass
class IngestionResult:
    conversation: Conversation
    message: Message
    messages: list[Message] = field(default_factory=list)
    assistant_message: Optional[Message] = None
    duplicate: bool = False
    usage_recorded: bool = False
    skip_reason: Optional[str] = None


def binding_for_conversation(db: Session, conversation: Conversation) -> Optional[ChannelBinding]:
    if conversation.assistant_channel_id:
        binding = db.get(ChannelBinding, conversation.assistant_channel_id)
        if binding is not None:
            return binding
    query = db.query(ChannelBinding).filter(
        ChannelBinding.company_id == conversation.company_id,
        ChannelBinding.channel == conversation.channel,
    )
    if conversation.assistant_id is not None:
        query = query.filter(ChannelBinding.assistant_id == conversation.assistant_id)
    return query.order_by(ChannelBinding.id).first()


def auto_reply_block_reason(
    conversation: Conversation,
    company: Company,
    binding: Optional[ChannelBinding],
    quota: QuotaGate,
    has_replyable_content: bool,
) -> Optional[str]:
    """Why no automated reply is owed, or None when one is."""
    if not settings.auto_reply_enabled_for(conversation.channel):
        return "channel_disabled"
    if not has_replyable_content:
        return "no_replyable_content"
    if not company.is_active:
        return "company_inactive"
    if binding is not None and not binding.is_active:
        return "binding_inactive"
    if not quota.active:
        return "subscription_inactive"
    if not quota.remaining:
        return "quota_exhausted"
    if not is_active_for_auto_reply(conversation):
        return "chat_inactive"
    return None


def _attach_upload(db: Session, company: Company, conversation: Conversation, part: InboundPart) -> None:
    """Persist an uploaded file once; a redelivered message keeps the first copy."""
    if part.file is None:
        return
    if part.external_message_id:
        existing = (
            db.query(Message.id)
            .filter(Message.chat_id == conversation.id, Message.channel_message_id == part.external_message_id)
            .first()
        )
        if existing:
            return

    stored = store_upload(part.file, company_id=company.id, folder=conversation.channel)
    is_image = content_type_from_mime(part.file.content_type) == Message.TYPE_IMAGE
    attachment = {"type": "uploaded_image" if is_image else "uploaded_file", **stored}
    part.media_url = stored["url"]
    part.media_mime_type = part.media_mime_type or stored["mime_type"]
    part.media_size = part.media_size or stored["size"]
    part.attachments = (part.attachments or []) + [attachment]


class IngestionService:
    def __init__(
        self,
        orchestrator: Optional[ReplyOrchestrator] = None,
        dispatchers: Optional[DispatcherRegistry] = None,
    ):
        self._orchestrator = orchestrator
        self.dispatchers = dispatchers or dispatcher_registry

    @property
    def orchestrator(self) -> ReplyOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ReplyOrchestrator()
        return self._orchestrator

    def ingest(
        self,
        db: Session,
        company: Company,
        event: InboundEvent,
        *,
        binding: Optional[ChannelBinding] = None,
    ) -> IngestionResult:
        default_assistant = resolve_assistant(db, company.id)
        conversation = resolve_conversation(
            db,
            company_id=company.id,
            channel=event.channel,
            external_chat_id=event.external_chat_id,
            external_user_id=event.external_user_id,
            assistant_id=event.assistant_id if event.assistant_id is not None else getattr(binding, "assistant_id", None),
            default_assistant_id=default_assistant.id if default_assistant else None,
            assistant_channel_id=event.assistant_channel_id or getattr(binding, "id", None),
            name=event.name,
            default_name=event.default_name,
            avatar=event.avatar,
            status=event.status,
            metadata=event.metadata,
        )
        result = self.process_parts(db, company, conversation, event.parts, binding=binding)
        db.commit()
        return result

    def process_parts(
        self,
        db: Session,
        company: Company,
        conversation: Conversation,
        parts: list[InboundPart],
        *,
        binding: Optional[ChannelBinding] = None,
    ) -> IngestionResult:
        """Store parts, then charge usage and auto-reply for the new customer turns."""
        if not parts:
            raise ValidationFailed("Message content is required.")

        stored: list[Message] = []
        replyable: list[Message] = []
        any_created = False
        upload: Optional[UploadedFile] = None

        for part in parts:
            _attach_upload(db, company, conversation, part)
            appended = append_message(db, conversation, part, assistant_id=None)
            stored.append(appended.message)
            any_created = any_created or appended.created
            if appended.created and part.is_replyable:
                replyable.append(appended.message)
                if part.file is not None and upload is None:
                    upload = part.file

        primary = replyable[0] if replyable else stored[0]

        if not any_created:
            logger.info(
                "Duplicate delivery ignored",
                extra={"context": {"conversation_id": conversation.id, "channel": conversation.channel}},
            )
            return IngestionResult(conversation=conversation, message=primary, messages=stored, duplicate=True)

        if binding is None:
            binding = binding_for_conversation(db, conversation)

        quota = gate(db, company.id)
        usage_recorded = record_usage(db, conversation, utcnow()) if replyable else False

        reason = auto_reply_block_reason(conversation, company, binding, quota, bool(replyable))
        assistant = None
        if reason is None:
            assistant = resolve_assistant(db, company.id, conversation=conversation)
            if assistant is None:
                reason = "no_active_assistant"

        if reason is not None:
            logger.info(
                "Auto-reply skipped",
                extra={"context": {"conversation_id": conversation.id, "reason": reason}},
            )
            return IngestionResult(
                conversation=conversation,
                message=primary,
                messages=stored,
                usage_recorded=usage_recorded,
                skip_reason=reason,
            )

        assistant_message = self.reply_and_dispatch(db, conversation, assistant, replyable, binding, upload)
        return IngestionResult(
            conversation=conversation,
            message=primary,
            messages=stored,
            assistant_message=assistant_message,
            usage_recorded=usage_recorded,
        )

    def reply_and_dispatch(
        self,
        db: Session,
        conversation: Conversation,
        assistant: Assistant,
        messages: list[Message],
        binding: Optional[ChannelBinding],
        upload: Optional[UploadedFile] = None,
    ) -> Optional[Message]:
        reply = self.orchestrator.reply(db, conversation, assistant, messages, upload=upload)
        if not reply or not reply.strip():
            return None

        assistant_message = store_outbound_message(
            db,
            conversation,
            text=reply,
            sender_type=Message.SENDER_ASSISTANT,
            assistant_id=assistant.id,
            status="pending",
        )
        self.dispatchers.deliver(db, conversation, binding, assistant_message)
        return assistant_message

    def send_operator_message(
        self,
        db: Session,
        company: Company,
        conversation: Conversation,
        *,
        text: Optional[str],
        upload: Optional[UploadedFile] = None,
        direction: str = Message.DIRECTION_OUTBOUND,
        sender_type: Optional[str] = None,
    ) -> IngestionResult:
        """Store a message written in the operator console.

        Inbound customer messages take the same quota and auto-reply path as a
        channel delivery; outbound ones are handed to the channel dispatcher.
        """
        text = nullable_str(text)
        if text is None and upload is None:
            raise ValidationFailed("Message text or file is required.")
        if upload is not None and upload.size > settings.operator_max_file_kb * 1024:
            raise ValidationFailed(f"The file field must not be greater than {settings.operator_max_file_kb} kilobytes.")

        inbound = direction == Message.DIRECTION_INBOUND
        if sender_type is None:
            sender_type = Message.SENDER_CUSTOMER if inbound else Message.SENDER_AGENT

        message_type, link_url = classify_content(
            text,
            file_mime_type=upload.content_type if upload else None,
            has_file=upload is not None,
        )
        part = InboundPart(
            external_message_id=None,
            message_type=message_type,
            text=text,
            link_url=link_url if message_type == Message.TYPE_LINK else None,
            sent_at=utcnow(),
            kind=PART_MEDIA if upload is not None else PART_TEXT,
            sender_type=sender_type,
            direction=direction,
            status="received" if inbound else "pending",
            file=upload,
        )

        if inbound:
            result = self.process_parts(db, company, conversation, [part])
        else:
            _attach_upload(db, company, conversation, part)
            message = append_message(db, conversation, part).message
            self.dispatchers.deliver(db, conversation, binding_for_conversation(db, conversation), message)
            result = IngestionResult(conversation=conversation, message=message, messages=[message])

        db.commit()
        return result

    def assistant_reply(
        self,
        db: Session,
        company: Company,
        conversation: Conversation,
        prompt: Optional[str],
    ) -> IngestionResult:
        """Ask the chat's assistant directly; the prompt is stored as an already-read turn."""
        prompt = nullable_str(prompt)
        if prompt is None:
            raise ValidationFailed("The prompt field is required.")
        if not is_active_for_auto_reply(conversation):
            raise ValidationFailed("AI replies are disabled for this chat.")
        assistant = resolve_assistant(db, company.id, conversation=conversation)
        if assistant is None:
            raise ValidationFailed("No running assistant is available for this company.")

        message_type, link_url = classify_content(prompt)
        now = utcnow()
        message = append_message(
            db,
            conversation,
            InboundPart(
                external_message_id=None,
                message_type=message_type,
                text=prompt,
                link_url=link_url if message_type == Message.TYPE_LINK else None,
                sent_at=now,
                status="read",
            ),
        ).message
        message.read_at = now
        if conversation.assistant_id is None:
            conversation.assistant_id = assistant.id

        binding = binding_for_conversation(db, conversation)
        assistant_message = self.reply_and_dispatch(db, conversation, assistant, [message], binding)
        reset_unread(db, conversation)
        db.commit()
        return IngestionResult(
            conversation=conversation,
            message=message,
            messages=[message],
            assistant_message=assistant_message,
        )


ingestion_service = IngestionService()

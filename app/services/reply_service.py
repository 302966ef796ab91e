"""Assistant reply generation over the provider's thread/run API.

Every failure path degrades to a fallback text built from what the customer
wrote. The internal prompt is never shown to the customer.
"""

from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import LoggerAdapter, bind_logger, get_logger
from app.models import Assistant, Conversation, Message
from app.services.channels.base import UploadedFile
from app.services.channels.registry import INTERNAL_TEST_CHANNEL
from app.services.content import is_public_url, limit_text, message_preview
from app.services.crm_actions import CrmActionExtractor, PassThroughCrmActions
from app.services.llm import AssistantProvider, AssistantProviderError, MessageContent, get_assistant_provider
from app.services.media_storage import read_attachment_bytes
from app.services.thread_service import resolve_thread

logger = get_logger("reply_service")

FALLBACK_TEXT_LIMIT = 220

SOURCE_LABELS = {
    "widget": "website widget chat",
    "telegram": "Telegram",
    "instagram": "Instagram",
    "api": "API",
    INTERNAL_TEST_CHANNEL: "assistant test chat",
}

MEDIA_PROMPT_LABELS = {
    Message.TYPE_IMAGE: "Image URL",
    Message.TYPE_VIDEO: "Video URL",
    Message.TYPE_VOICE: "Voice/audio URL",
    Message.TYPE_AUDIO: "Voice/audio URL",
    Message.TYPE_FILE: "File URL",
}

LANGUAGE_INSTRUCTION = "Reply in the same language as customer, concise and helpful."

ATTACHMENT_TYPES = {Message.TYPE_FILE, Message.TYPE_VIDEO, Message.TYPE_AUDIO, Message.TYPE_VOICE}


def build_prompt(channel: str, messages: list[Message]) -> str:
    source = SOURCE_LABELS.get(channel, channel)
    lines = [f"Incoming customer message from {source}:"]

    for message in messages:
        message_type = message.message_type or Message.TYPE_TEXT
        text = (message.text or "").strip()
        media_url = (message.media_url or "").strip()

        if message_type == Message.TYPE_TEXT and text:
            lines.append(f"- Text: {text}")
            continue
        if message_type == Message.TYPE_LINK:
            lines.append(f"- Link: {(message.link_url or '').strip() or text}")
            continue
        if message_type in MEDIA_PROMPT_LABELS:
            lines.append(f"- {MEDIA_PROMPT_LABELS[message_type]}: {media_url}")
            if text:
                lines.append(f"- Text: {text}")
            continue
        if text:
            lines.append(f"- Message: {text}")

    lines.append(LANGUAGE_INSTRUCTION)
    return "\n".join(lines)


def customer_text(messages: list[Message]) -> str:
    """What the customer actually sent, as shown in a fallback reply."""
    pieces = []
    for message in messages:
        text = (message.text or "").strip()
        if text:
            pieces.append(text)
        elif message.link_url:
            pieces.append(message.link_url)
        else:
            pieces.append(message_preview(None, message.message_type))
    return " ".join(pieces)


def fallback_text(assistant: Assistant, received: str) -> str:
    return f"[{assistant.name}] Received: {limit_text(received.strip(), FALLBACK_TEXT_LIMIT)}"


def assistant_tools(assistant: Assistant) -> list[str]:
    tools = []
    if assistant.enable_file_search:
        tools.append("file_search")
    if assistant.enable_file_analysis:
        tools.append("code_interpreter")
    return tools


class ReplyOrchestrator:
    """Turns stored customer turns into one assistant reply."""

    def __init__(
        self,
        provider: Optional[AssistantProvider] = None,
        crm: Optional[CrmActionExtractor] = None,
    ):
        self.provider = provider or get_assistant_provider()
        self.crm = crm or PassThroughCrmActions()

    def reply(
        self,
        db: Session,
        conversation: Conversation,
        assistant: Assistant,
        messages: list[Message],
        upload: Optional[UploadedFile] = None,
    ) -> str:
        fallback = fallback_text(assistant, customer_text(messages))
        log = bind_logger("reply_service", conversation_id=conversation.id, assistant_id=assistant.id)

        if not self.provider.is_configured():
            log.warning("Assistant provider is not configured")
            return fallback

        remote_assistant_id = self._ensure_remote_assistant(db, assistant)
        if not remote_assistant_id:
            return fallback

        prompt = self.crm.augment_prompt(conversation, assistant, build_prompt(conversation.channel, messages))

        try:
            thread_id = resolve_thread(db, conversation, assistant, self.provider)
        except AssistantProviderError as e:
            log.warning(f"Thread creation failed: {e}")
            return fallback

        content = self._build_content(assistant, prompt, messages, upload)

        try:
            self.provider.add_message(thread_id, content)
        except AssistantProviderError as e:
            log.warning(f"Posting to thread failed: {e}")
            return fallback

        reply = self._run(thread_id, remote_assistant_id, log)
        if not reply:
            log.warning("Assistant produced no reply, using fallback")
            return fallback

        reply = self.crm.apply_actions(conversation, assistant, reply)
        return reply if reply.strip() else fallback

    def _ensure_remote_assistant(self, db: Session, assistant: Assistant) -> Optional[str]:
        if assistant.openai_assistant_id:
            return assistant.openai_assistant_id
        try:
            remote_id = self.provider.create_assistant(
                name=assistant.name,
                instructions=assistant.instructions,
                model=assistant.model,
                tools=assistant_tools(assistant),
                metadata={"assistant_id": assistant.id, "company_id": assistant.company_id},
            )
        except AssistantProviderError as e:
            logger.warning(
                f"Remote assistant creation failed: {e}",
                extra={"context": {"assistant_id": assistant.id}},
            )
            return None
        assistant.openai_assistant_id = remote_id
        db.commit()
        logger.info("Remote assistant created", extra={"context": {"assistant_id": assistant.id}})
        return remote_id

    def _run(self, thread_id: str, remote_assistant_id: str, log: LoggerAdapter) -> Optional[str]:
        try:
            outcome = self.provider.run_and_wait(thread_id, remote_assistant_id)
        except AssistantProviderError as e:
            log.warning(f"Assistant run failed: {e}")
            return None
        return outcome.text.strip() if outcome.has_text else None

    def _build_content(
        self,
        assistant: Assistant,
        prompt: str,
        messages: list[Message],
        upload: Optional[UploadedFile],
    ) -> MessageContent:
        content = MessageContent(text=prompt)
        media = next((m for m in messages if m.message_type not in (Message.TYPE_TEXT, Message.TYPE_LINK)), None)
        if media is None:
            return content

        file_name, data = self._media_bytes(media, upload)

        if media.message_type == Message.TYPE_IMAGE:
            if data:
                try:
                    content.image_file_id = self.provider.upload_file(
                        filename=file_name, data=data, mime_type=media.media_mime_type, purpose="vision"
                    )
                    return content
                except AssistantProviderError as e:
                    logger.warning(f"Image upload failed: {e}", extra={"context": {"message_id": media.id}})
            if is_public_url(media.media_url):
                content.image_url = media.media_url
                return content
            content.text = f"{prompt}\n(The customer attached an image that could not be forwarded.)"
            return content

        if media.message_type in ATTACHMENT_TYPES:
            tools = assistant_tools(assistant)
            if not tools or not data:
                return content
            try:
                content.attachment_file_id = self.provider.upload_file(
                    filename=file_name, data=data, mime_type=media.media_mime_type, purpose="assistants"
                )
                content.attachment_tools = tools
            except AssistantProviderError as e:
                logger.warning(f"File upload failed: {e}", extra={"context": {"message_id": media.id}})
        return content

    @staticmethod
    def _media_bytes(media: Message, upload: Optional[UploadedFile]) -> tuple[str, Optional[bytes]]:
        if upload is not None and upload.data:
            return upload.filename or "upload", upload.data
        stored = read_attachment_bytes(media.attachments)
        if stored is not None:
            return stored
        return "upload", None

from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Assistant, Conversation
from app.schemas.chat_metadata import THREADS_KEY, merge_chat_metadata
from app.services.llm import AssistantProvider

logger = get_logger("thread_service")


def stored_thread_id(conversation: Conversation, assistant: Assistant) -> Optional[str]:
    threads = (conversation.chat_metadata or {}).get(THREADS_KEY) or {}
    value = threads.get(str(assistant.id))
    return str(value) if value else None


def resolve_thread(
    db: Session,
    conversation: Conversation,
    assistant: Assistant,
    provider: AssistantProvider,
) -> str:
    """Return the provider thread for (conversation, assistant), creating it on first use.

    A stored thread is kept for the conversation's lifetime; it is never replaced here.
    """
    thread_id = stored_thread_id(conversation, assistant)
    if thread_id:
        return thread_id

    thread_id = provider.create_thread(
        metadata={
            "chat_id": conversation.id,
            "company_id": conversation.company_id,
            "assistant_id": assistant.id,
        }
    )
    conversation.chat_metadata = merge_chat_metadata(
        conversation.chat_metadata,
        {THREADS_KEY: {str(assistant.id): thread_id}},
    )
    # Committed right away so a failing run later in the request keeps the thread.
    db.commit()
    logger.info(
        "Thread created",
        extra={"context": {"conversation_id": conversation.id, "assistant_id": assistant.id, "thread_id": thread_id}},
    )
    return thread_id

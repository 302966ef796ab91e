from app.services.llm.base import AssistantProvider, AssistantProviderError, MessageContent, RunOutcome
from app.services.llm.openai_provider import OpenAIAssistantsProvider

__all__ = [
    "AssistantProvider",
    "AssistantProviderError",
    "MessageContent",
    "OpenAIAssistantsProvider",
    "RunOutcome",
    "get_assistant_provider",
]


def get_assistant_provider() -> AssistantProvider:
    from app.config import settings

    return OpenAIAssistantsProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        default_model=settings.openai_default_model,
        timeout_seconds=settings.openai_timeout_seconds,
        run_max_attempts=settings.openai_run_max_attempts,
        run_timeout_seconds=settings.openai_run_timeout_seconds,
        poll_interval_seconds=settings.openai_run_poll_interval_seconds,
    )

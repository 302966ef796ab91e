"""CRM collaborator hooks around the assistant reply.

Action rules (orders, appointments) live outside this service. The default
collaborator leaves the prompt unchanged and strips action markup from replies
so that it never reaches a customer.
"""

import json
import re
from abc import ABC, abstractmethod

from app.logging_config import get_logger
from app.models import Assistant, Conversation

logger = get_logger("crm_actions")

ACTION_PATTERN = re.compile(r"<crm_action>\s*(\{.*?\})\s*</crm_action>", re.IGNORECASE | re.DOTALL)


class CrmActionExtractor(ABC):
    @abstractmethod
    def augment_prompt(self, conversation: Conversation, assistant: Assistant, prompt: str) -> str:
        pass

    @abstractmethod
    def apply_actions(self, conversation: Conversation, assistant: Assistant, reply: str) -> str:
        pass


class PassThroughCrmActions(CrmActionExtractor):
    def augment_prompt(self, conversation: Conversation, assistant: Assistant, prompt: str) -> str:
        return prompt

    def apply_actions(self, conversation: Conversation, assistant: Assistant, reply: str) -> str:
        actions = []
        for match in ACTION_PATTERN.finditer(reply or ""):
            try:
                actions.append(json.loads(match.group(1)))
            except ValueError:
                continue
        if actions:
            logger.info(
                "Assistant reply carried CRM actions",
                extra={"context": {"conversation_id": conversation.id, "actions": len(actions)}},
            )
        return ACTION_PATTERN.sub("", reply or "").strip()

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


class AssistantProviderError(Exception):
    """Raised when the assistant provider rejects a request or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class MessageContent:
    """One provider message built from a customer turn."""

    text: str
    image_file_id: Optional[str] = None
    image_url: Optional[str] = None
    attachment_file_id: Optional[str] = None
    attachment_tools: List[str] = field(default_factory=list)


@dataclass
class RunOutcome:
    status: str
    text: Optional[str] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


class AssistantProvider(ABC):
    """Abstract base class for thread/run assistant providers."""

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    def create_assistant(
        self,
        *,
        name: str,
        instructions: Optional[str],
        model: Optional[str],
        tools: Optional[List[str]] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        """Create a remote assistant and return its id."""
        pass

    @abstractmethod
    def create_thread(self, metadata: Optional[dict] = None) -> str:
        pass

    @abstractmethod
    def upload_file(self, *, filename: str, data: bytes, mime_type: Optional[str], purpose: str) -> str:
        pass

    @abstractmethod
    def add_message(self, thread_id: str, content: MessageContent) -> str:
        pass

    @abstractmethod
    def run_and_wait(self, thread_id: str, assistant_id: str) -> RunOutcome:
        """Start a run and block until it finishes, fails or times out."""
        pass

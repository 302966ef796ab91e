from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from app.models import Message
from app.services.errors import AdapterRejected

PART_TEXT = "text"
PART_MEDIA = "media"
PART_EVENT = "event"

FORMAT_MESSAGES = {
    "visitor_email": "The visitor_email field must be a valid email address.",
    "page_url": "The page_url field must be a valid URL.",
}

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class InboundPart:
    """One storable turn extracted from a channel payload."""

    external_message_id: Optional[str]
    message_type: str = Message.TYPE_TEXT
    text: Optional[str] = None
    media_url: Optional[str] = None
    media_mime_type: Optional[str] = None
    media_size: Optional[int] = None
    link_url: Optional[str] = None
    attachments: Optional[list] = None
    payload: Optional[dict] = None
    sent_at: Optional[datetime] = None
    kind: str = PART_TEXT
    sender_type: str = Message.SENDER_CUSTOMER
    direction: str = Message.DIRECTION_INBOUND
    status: str = "received"
    file: Optional[UploadedFile] = None

    @property
    def is_inbound_customer(self) -> bool:
        return self.direction == Message.DIRECTION_INBOUND and self.sender_type == Message.SENDER_CUSTOMER

    @property
    def is_replyable(self) -> bool:
        return self.kind != PART_EVENT and self.is_inbound_customer


@dataclass
class InboundEvent:
    """Canonical inbound record produced by a channel adapter."""

    channel: str
    external_chat_id: str
    parts: list[InboundPart]
    external_user_id: Optional[str] = None
    name: Optional[str] = None
    default_name: Optional[str] = None  # used only when the conversation has no name yet
    avatar: Optional[str] = None
    status: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    # Tenant hints carried by payloads that name their own tenant (generic webhook)
    company_id: Optional[int] = None
    assistant_id: Optional[int] = None
    assistant_channel_id: Optional[int] = None

    @property
    def has_replyable_content(self) -> bool:
        return any(part.is_replyable for part in self.parts)


@dataclass
class RawInbound:
    """What a router hands to an adapter: body, headers and request context."""

    channel: str
    payload: dict
    headers: Mapping[str, str] = field(default_factory=dict)
    upload: Optional[UploadedFile] = None
    binding: Any = None
    company_id: Optional[int] = None
    expected_token: Optional[str] = None
    file_url_resolver: Optional[Callable[[str], Optional[str]]] = None

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class ChannelAdapter(ABC):
    """Converts a raw channel payload into an :class:`InboundEvent`.

    Adapters never touch the database. They raise ``AdapterRejected`` when the
    payload cannot be accepted and return ``None`` for events that should be
    ignored (bot echoes, service updates).
    """

    name: str = ""

    @abstractmethod
    def normalize(self, raw: RawInbound) -> Optional[InboundEvent]:
        """Normalize a raw payload."""
        pass


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time comparison of a configured secret with the presented one."""
    if not expected or provided is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), str(provided).encode("utf-8"))


def validation_message(error: ValidationError) -> str:
    """First validation problem as a single field-level message."""
    first = error.errors()[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    ctx = first.get("ctx") or {}
    error_type = first.get("type", "")

    if error_type == "missing":
        return f"The {field_name} field is required."
    if error_type == "string_type":
        return f"The {field_name} field must be a string."
    if error_type == "string_too_long":
        return f"The {field_name} field must not be greater than {ctx.get('max_length')} characters."
    if error_type == "string_pattern_mismatch":
        return FORMAT_MESSAGES.get(field_name, f"The {field_name} field format is invalid.")
    if error_type == "literal_error":
        return f"The selected {field_name} is invalid."
    if error_type.startswith("int_"):
        return f"The {field_name} field must be an integer."
    if error_type == "greater_than_equal":
        return f"The {field_name} field must be at least {ctx.get('ge')}."
    if error_type == "value_error" and ctx.get("error") is not None:
        return str(ctx["error"])
    return f"The {field_name} field is invalid."


def validate_payload(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a raw body with ``model``; failures become ``AdapterRejected``."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise AdapterRejected(validation_message(e))

"""Content helpers shared by channel adapters and the message store."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Optional
from urllib.parse import urlparse

from app.models import Message

URL_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)

PREVIEW_LIMIT = 160

PREVIEW_PLACEHOLDERS = {
    Message.TYPE_IMAGE: "[Image]",
    Message.TYPE_VIDEO: "[Video]",
    Message.TYPE_VOICE: "[Voice]",
    Message.TYPE_AUDIO: "[Audio]",
    Message.TYPE_LINK: "[Link]",
    Message.TYPE_FILE: "[File]",
}

MESSAGE_TYPES = {
    Message.TYPE_TEXT,
    Message.TYPE_IMAGE,
    Message.TYPE_VIDEO,
    Message.TYPE_VOICE,
    Message.TYPE_AUDIO,
    Message.TYPE_LINK,
    Message.TYPE_FILE,
}

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", "0.0.0.0"}


def limit_text(value: str, limit: int, suffix: str = "...") -> str:
    if len(value) <= limit:
        return value
    return value[:limit].rstrip() + suffix


def extract_first_url(text: Optional[str]) -> Optional[str]:
    match = URL_PATTERN.search(text or "")
    if not match:
        return None
    url = match.group(0).strip()
    return url or None


def is_only_url(text: Optional[str]) -> bool:
    normalized = (text or "").strip()
    if not normalized:
        return False
    first = extract_first_url(normalized)
    if first != normalized:
        return False
    parsed = urlparse(normalized)
    return bool(parsed.scheme and parsed.netloc)


def content_type_from_mime(mime_type: Optional[str]) -> str:
    mime = (mime_type or "").strip().lower()
    if mime.startswith("image/"):
        return Message.TYPE_IMAGE
    if mime.startswith("video/"):
        return Message.TYPE_VIDEO
    if mime.startswith("audio/"):
        return Message.TYPE_AUDIO
    return Message.TYPE_FILE


def classify_content(
    text: Optional[str],
    *,
    file_mime_type: Optional[str] = None,
    has_file: bool = False,
    explicit_type: Optional[str] = None,
) -> tuple[str, Optional[str]]:
    """Return ``(message_type, link_url)`` for an inbound part.

    An uploaded file wins over text. Text made of a single URL is a link, any
    other text is text, and a part with neither is a file.
    """
    normalized = (text or "").strip()
    link_url = extract_first_url(normalized)

    if has_file or file_mime_type:
        return content_type_from_mime(file_mime_type), link_url

    if explicit_type in MESSAGE_TYPES and explicit_type != Message.TYPE_TEXT:
        return explicit_type, link_url

    if normalized:
        if link_url is not None and is_only_url(normalized):
            return Message.TYPE_LINK, link_url
        return Message.TYPE_TEXT, link_url

    return Message.TYPE_FILE, link_url


def message_preview(text: Optional[str], message_type: Optional[str]) -> str:
    normalized = (text or "").strip()
    if normalized:
        return limit_text(normalized, PREVIEW_LIMIT)
    return PREVIEW_PLACEHOLDERS.get(message_type or "", "[Message]")


def short_hash(value: Any, length: int = 40) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def synthesize_chat_id(company_id: Any, channel: str, message_id: Any, name: Any, text: Any) -> str:
    """Deterministic chat id for sources that send no stable identifier."""
    fingerprint = "|".join(str(part or "") for part in (company_id, channel, message_id, name, text))
    return f"auto-{short_hash(fingerprint)}"


def part_message_id(base_message_id: str, suffix: str) -> str:
    return f"{base_message_id}:{suffix}"


def is_public_url(url: Optional[str]) -> bool:
    """True for http(s) URLs a remote provider could fetch."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"}:
        return False
    host = (parsed.hostname or "").lower()
    if not host or host in LOCAL_HOSTS:
        return False
    if host.startswith("127."):
        return False
    return not (host.endswith(".local") or host.endswith(".test"))


def nullable_str(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    if not normalized:
        return None
    if max_length is not None:
        normalized = normalized[:max_length]
    return normalized

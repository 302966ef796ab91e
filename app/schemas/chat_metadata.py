"""Typed sections of ``chats.metadata``.

Each concern owns one section with explicit optional fields. Sections are
merged field by field so that one writer cannot silently drop keys written by
another (for example the thread map written by the reply path).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

METADATA_VERSION = 1


class _Section(BaseModel):
    model_config = ConfigDict(extra="allow")


class WidgetSession(_Section):
    session_id: Optional[str] = None
    assistant_channel_id: Optional[int] = None
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    visitor_phone: Optional[str] = None
    page_url: Optional[str] = None
    last_seen_at: Optional[str] = None


class TelegramInfo(_Section):
    assistant_channel_id: Optional[int] = None
    chat_id: Optional[str] = None
    chat_type: Optional[str] = None
    bot_id: Optional[str] = None
    bot_username: Optional[str] = None


class InstagramInfo(_Section):
    assistant_channel_id: Optional[int] = None
    instagram_user_id: Optional[str] = None
    receiver_id: Optional[str] = None


SECTIONS: dict[str, type[_Section]] = {
    "widget": WidgetSession,
    "telegram": TelegramInfo,
    "instagram": InstagramInfo,
}

THREADS_KEY = "openai_threads"


def _merge_section(name: str, current: Any, incoming: Any) -> dict:
    model = SECTIONS[name]
    base = model.model_validate(current if isinstance(current, dict) else {})
    update = model.model_validate(incoming if isinstance(incoming, dict) else {})
    merged = base.model_dump()
    for key, value in update.model_dump(exclude_unset=True).items():
        if value is not None:
            merged[key] = value
    return {key: value for key, value in merged.items() if value is not None}


def merge_chat_metadata(current: Optional[dict], incoming: Optional[dict]) -> dict:
    """Merge ``incoming`` into ``current`` without losing keys from earlier turns.

    Known sections merge field by field (non-null incoming values win), the
    thread map only gains entries, other top-level keys are replaced.
    """
    merged = dict(current or {})
    for key, value in (incoming or {}).items():
        if key in SECTIONS:
            merged[key] = _merge_section(key, merged.get(key), value)
        elif key == THREADS_KEY:
            threads = dict(merged.get(THREADS_KEY) or {})
            threads.update({str(k): v for k, v in (value or {}).items() if v})
            merged[THREADS_KEY] = threads
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    merged["version"] = METADATA_VERSION
    return merged

"""Resolve the company, assistant and channel binding behind an inbound request."""

import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Assistant, ChannelBinding, Company
from app.services.channels.base import InboundEvent
from app.services.content import nullable_str
from app.services.errors import NotFound, ValidationFailed

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
WIDGET_POSITIONS = {"bottom-right", "bottom-left"}
WIDGET_THEMES = {"light", "dark"}


@dataclass
class Tenant:
    company: Company
    assistant: Optional[Assistant] = None
    binding: Optional[ChannelBinding] = None


def resolve_webhook_tenant(db: Session, event: InboundEvent) -> Tenant:
    """Company from ``company_id`` or from the assistant; the binding must agree with both."""
    company = db.get(Company, event.company_id) if event.company_id is not None else None
    assistant = None

    if event.assistant_id is not None:
        assistant = db.get(Assistant, event.assistant_id)
        if assistant is None:
            raise ValidationFailed("Assistant was not found.")
        if company is not None and assistant.company_id != company.id:
            raise ValidationFailed("Assistant does not belong to this company.")
        if company is None:
            company = db.get(Company, assistant.company_id)

    if company is None:
        raise ValidationFailed("company_id or assistant_id is required.")

    binding = None
    if event.assistant_channel_id is not None:
        binding = db.get(ChannelBinding, event.assistant_channel_id)
        if binding is None or binding.company_id != company.id:
            raise ValidationFailed("Assistant channel does not belong to this company.")
        if assistant is None and binding.assistant_id:
            assistant = db.get(Assistant, binding.assistant_id)
        if assistant is not None and binding.assistant_id and binding.assistant_id != assistant.id:
            raise ValidationFailed("Assistant channel and assistant mismatch.")

    return Tenant(company=company, assistant=assistant, binding=binding)


def find_widget_binding(db: Session, widget_key: str) -> ChannelBinding:
    key = (widget_key or "").strip()
    if key:
        for binding in db.query(ChannelBinding).filter(ChannelBinding.channel == "widget").order_by(ChannelBinding.id):
            if binding.credential("widget_key") == key:
                return binding
    raise NotFound("Widget channel not found.")


def active_widget_binding(db: Session, widget_key: str) -> ChannelBinding:
    binding = find_widget_binding(db, widget_key)
    if not binding.is_active:
        raise ValidationFailed("Widget channel is disabled.")
    return binding


def widget_settings(binding: ChannelBinding) -> dict:
    """Widget appearance with defaults for anything unset or invalid."""
    raw = binding.settings or {}
    assistant_name = nullable_str(binding.assistant.name if binding.assistant else None) or "Assistant"
    company_name = nullable_str(binding.company.name if binding.company else None) or "Company"

    position = nullable_str(raw.get("position"))
    theme = nullable_str(raw.get("theme"))
    color = nullable_str(raw.get("primary_color"))
    return {
        "position": position if position in WIDGET_POSITIONS else "bottom-right",
        "theme": theme if theme in WIDGET_THEMES else "light",
        "primary_color": color.upper() if color and COLOR_PATTERN.match(color) else "#1677FF",
        "title": nullable_str(raw.get("title")) or f"{company_name} Chat",
        "welcome_message": nullable_str(raw.get("welcome_message"))
        or f"Hello! I am {assistant_name}. Write your question.",
        "placeholder": nullable_str(raw.get("placeholder")) or "Type a message...",
        "launcher_label": nullable_str(raw.get("launcher_label")) or "Chat",
    }


def find_instagram_binding(db: Session, receiver_id: Optional[str]) -> Optional[ChannelBinding]:
    if not receiver_id:
        return None
    return (
        db.query(ChannelBinding)
        .filter(ChannelBinding.channel == "instagram", ChannelBinding.external_account_id == str(receiver_id))
        .order_by(ChannelBinding.id)
        .first()
    )

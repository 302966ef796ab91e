from __future__ import annotations

from typing import Dict, Optional

from app.config import settings
from app.services.channels.api import ApiWebhookAdapter
from app.services.channels.base import ChannelAdapter, InboundEvent, RawInbound
from app.services.channels.instagram import InstagramAdapter
from app.services.channels.telegram import TelegramAdapter
from app.services.channels.widget import WidgetAdapter
from app.services.errors import AdapterRejected

CHANNEL_ALIASES = {
    "instagram": "instagram",
    "telegram": "telegram",
    "widget": "widget",
    "web-widget": "widget",
    "web_widget": "widget",
    "webchat": "widget",
    "api": "api",
}

INTERNAL_TEST_CHANNEL = "internal-test"


def normalize_channel(channel: Optional[str]) -> Optional[str]:
    return CHANNEL_ALIASES.get((channel or "").strip().lower())


class ChannelRegistry:
    def __init__(self) -> None:
        self._adapters: Dict[str, ChannelAdapter] = {}

    def register(self, adapter: ChannelAdapter) -> None:
        if adapter.name in self._adapters:
            raise ValueError(f"Channel adapter already registered: {adapter.name}")
        self._adapters[adapter.name] = adapter

    def get(self, channel: str) -> Optional[ChannelAdapter]:
        return self._adapters.get(channel)

    def names(self) -> list[str]:
        return list(self._adapters)

    def normalize(self, raw: RawInbound, *, adapter_name: Optional[str] = None) -> Optional[InboundEvent]:
        """Run the adapter for ``raw.channel`` (or an explicit adapter such as the generic webhook)."""
        channel = normalize_channel(raw.channel)
        if channel is None:
            raise AdapterRejected("Unsupported webhook channel.")
        raw.channel = channel
        adapter = self.get(adapter_name or channel)
        if adapter is None:
            raise AdapterRejected("Unsupported webhook channel.")
        return adapter.normalize(raw)


def build_default_registry() -> ChannelRegistry:
    registry = ChannelRegistry()
    registry.register(WidgetAdapter(max_image_kb=settings.widget_max_image_kb))
    registry.register(TelegramAdapter())
    registry.register(InstagramAdapter())
    registry.register(ApiWebhookAdapter())
    return registry


channel_registry = build_default_registry()

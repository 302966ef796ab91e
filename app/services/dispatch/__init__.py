from app.services.dispatch.base import LocalDispatcher, OutboundDispatcher
from app.services.dispatch.instagram import InstagramDispatcher
from app.services.dispatch.registry import DispatcherRegistry, build_default_registry, dispatcher_registry
from app.services.dispatch.telegram import TelegramDispatcher, TelegramService

__all__ = [
    "DispatcherRegistry",
    "InstagramDispatcher",
    "LocalDispatcher",
    "OutboundDispatcher",
    "TelegramDispatcher",
    "TelegramService",
    "build_default_registry",
    "dispatcher_registry",
]

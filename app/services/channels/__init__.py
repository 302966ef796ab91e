from app.services.channels.base import (
    ChannelAdapter,
    InboundEvent,
    InboundPart,
    RawInbound,
    UploadedFile,
)
from app.services.channels.registry import (
    INTERNAL_TEST_CHANNEL,
    ChannelRegistry,
    channel_registry,
    normalize_channel,
)

__all__ = [
    "ChannelAdapter",
    "ChannelRegistry",
    "InboundEvent",
    "InboundPart",
    "RawInbound",
    "UploadedFile",
    "INTERNAL_TEST_CHANNEL",
    "channel_registry",
    "normalize_channel",
]

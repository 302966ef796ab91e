from __future__ import annotations

import uuid
from typing import Optional

from app.models import Message
from app.schemas.inbound import WidgetMessageIn
from app.services.channels.base import (
    PART_MEDIA,
    PART_TEXT,
    ChannelAdapter,
    InboundEvent,
    InboundPart,
    RawInbound,
    validate_payload,
)
from app.services.content import classify_content
from app.services.errors import AdapterRejected
from app.services.timeutils import utcnow

DEFAULT_VISITOR_NAME = "Website Visitor"


class WidgetAdapter(ChannelAdapter):
    """Website chat widget: one visitor session is one conversation."""

    name = "widget"

    def __init__(self, max_image_kb: int = 8192):
        self.max_image_kb = max_image_kb

    def normalize(self, raw: RawInbound) -> Optional[InboundEvent]:
        body = validate_payload(WidgetMessageIn, raw.payload or {})

        upload = raw.upload
        if upload is not None:
            if not (upload.content_type or "").lower().startswith("image/"):
                raise AdapterRejected("The file field must be an image.")
            if upload.size > self.max_image_kb * 1024:
                raise AdapterRejected(f"The file field must not be greater than {self.max_image_kb} kilobytes.")

        text = body.text
        if text is None and upload is None:
            raise AdapterRejected("Message text or image is required.")

        message_type, link_url = classify_content(
            text,
            file_mime_type=upload.content_type if upload else None,
            has_file=upload is not None,
        )
        client_message_id = body.client_message_id
        channel_message_id = client_message_id or f"widget_{uuid.uuid4()}"

        payload = {
            "source": "widget_script",
            "page_url": body.page_url,
            "client_message_id": client_message_id,
        }
        part = InboundPart(
            external_message_id=channel_message_id,
            message_type=message_type,
            text=text,
            media_mime_type=upload.content_type if upload else None,
            media_size=upload.size if upload else None,
            link_url=link_url if message_type == Message.TYPE_LINK else None,
            payload={key: value for key, value in payload.items() if value is not None},
            sent_at=utcnow(),
            kind=PART_MEDIA if upload is not None else PART_TEXT,
            file=upload,
        )

        session_id = body.session_id
        binding_id = getattr(raw.binding, "id", None)
        widget_session = {
            "session_id": session_id,
            "assistant_channel_id": binding_id,
            "visitor_name": body.visitor_name,
            "visitor_email": body.visitor_email,
            "visitor_phone": body.visitor_phone,
            "page_url": body.page_url,
            "last_seen_at": utcnow().isoformat(),
        }

        return InboundEvent(
            channel=self.name,
            external_chat_id=session_id,
            external_user_id=session_id,
            name=body.visitor_name,
            default_name=DEFAULT_VISITOR_NAME,
            metadata={"source": "widget_script", "widget": widget_session},
            parts=[part],
        )

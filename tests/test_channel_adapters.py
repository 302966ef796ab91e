import hashlib
import hmac
from types import SimpleNamespace

import pytest

from app.models import Message
from app.services.channels import RawInbound, UploadedFile, channel_registry, normalize_channel
from app.services.channels.base import PART_EVENT, PART_MEDIA
from app.services.channels.instagram import verify_signature
from app.services.errors import AdapterRejected, Forbidden, Unauthorized


def binding(**credentials):
    return SimpleNamespace(
        id=7,
        credentials=credentials,
        credential=lambda key: str(credentials.get(key) or "").strip(),
    )


class TestRegistry:
    def test_aliases(self):
        assert normalize_channel("Web-Widget") == "widget"
        assert normalize_channel("webchat") == "widget"
        assert normalize_channel("whatsapp") is None

    def test_unknown_channel_rejected(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(RawInbound(channel="fax", payload={}))
        assert exc.value.message == "Unsupported webhook channel."
        assert exc.value.status_code == 422


class TestWidgetAdapter:
    def test_text_message(self):
        event = channel_registry.normalize(
            RawInbound(
                channel="widget",
                payload={"session_id": "s-1", "text": "Hi", "visitor_name": "Ann", "client_message_id": "c-1"},
                binding=binding(),
            )
        )
        assert event.external_chat_id == "s-1"
        assert event.name == "Ann"
        assert event.default_name == "Website Visitor"
        part = event.parts[0]
        assert part.external_message_id == "c-1"
        assert part.message_type == Message.TYPE_TEXT
        assert event.metadata["widget"]["session_id"] == "s-1"
        assert event.metadata["widget"]["assistant_channel_id"] == 7

    def test_generated_message_id(self):
        event = channel_registry.normalize(RawInbound(channel="widget", payload={"session_id": "s", "text": "x"}))
        assert event.parts[0].external_message_id.startswith("widget_")

    def test_session_required(self):
        with pytest.raises(AdapterRejected, match="session_id"):
            channel_registry.normalize(RawInbound(channel="widget", payload={"text": "x"}))

    def test_text_or_image_required(self):
        with pytest.raises(AdapterRejected, match="Message text or image is required."):
            channel_registry.normalize(RawInbound(channel="widget", payload={"session_id": "s"}))

    def test_non_image_upload_rejected(self):
        upload = UploadedFile(filename="a.pdf", content_type="application/pdf", data=b"%PDF")
        with pytest.raises(AdapterRejected, match="must be an image"):
            channel_registry.normalize(RawInbound(channel="widget", payload={"session_id": "s"}, upload=upload))

    def test_image_upload(self):
        upload = UploadedFile(filename="a.png", content_type="image/png", data=b"\x89PNG")
        event = channel_registry.normalize(RawInbound(channel="widget", payload={"session_id": "s"}, upload=upload))
        part = event.parts[0]
        assert part.message_type == Message.TYPE_IMAGE
        assert part.kind == PART_MEDIA
        assert part.file is upload

    def test_invalid_email(self):
        with pytest.raises(AdapterRejected, match="visitor_email"):
            channel_registry.normalize(
                RawInbound(channel="widget", payload={"session_id": "s", "text": "x", "visitor_email": "nope"})
            )

    def test_field_length_limit(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(RawInbound(channel="widget", payload={"session_id": "s" * 192, "text": "x"}))
        assert exc.value.message == "The session_id field must not be greater than 191 characters."

    def test_non_string_field_rejected(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(
                RawInbound(channel="widget", payload={"session_id": "s", "text": {"nested": "x"}})
            )
        assert exc.value.message == "The text field must be a string."

    def test_invalid_page_url(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(
                RawInbound(channel="widget", payload={"session_id": "s", "text": "x", "page_url": "ftp://files"})
            )
        assert exc.value.message == "The page_url field must be a valid URL."

    def test_blank_fields_read_as_absent(self):
        event = channel_registry.normalize(
            RawInbound(
                channel="widget",
                payload={
                    "session_id": " s-2 ",
                    "text": "hi",
                    "visitor_email": "  ",
                    "page_url": "HTTPS://shop.example.com",
                },
            )
        )
        assert event.external_chat_id == "s-2"
        assert event.metadata["widget"]["visitor_email"] is None
        assert event.metadata["widget"]["page_url"] == "HTTPS://shop.example.com"


class TestApiWebhookAdapter:
    def test_token_required_when_configured(self):
        raw = RawInbound(channel="api", payload={"text": "x"}, expected_token="secret")
        with pytest.raises(Unauthorized, match="Invalid webhook token."):
            channel_registry.normalize(raw, adapter_name="api")

    def test_token_from_header(self):
        raw = RawInbound(
            channel="telegram",
            payload={"company_id": 3, "text": "hello", "channel_chat_id": "c1"},
            headers={"x-webhook-token": "secret"},
            expected_token="secret",
        )
        event = channel_registry.normalize(raw, adapter_name="api")
        assert event.channel == "telegram"
        assert event.company_id == 3
        assert event.parts[0].text == "hello"

    def test_nested_objects(self):
        raw = RawInbound(
            channel="api",
            payload={
                "assistant_id": "5",
                "chat": {"id": "room-1", "name": "Bob"},
                "message": {"id": "m-1", "text": "https://example.com"},
            },
        )
        event = channel_registry.normalize(raw, adapter_name="api")
        assert event.assistant_id == 5
        assert event.external_chat_id == "room-1"
        assert event.name == "Bob"
        part = event.parts[0]
        assert part.external_message_id == "m-1"
        assert part.message_type == Message.TYPE_LINK
        assert part.link_url == "https://example.com"

    def test_chat_id_falls_back_to_user_then_synthesized(self):
        event = channel_registry.normalize(
            RawInbound(channel="api", payload={"company_id": 1, "channel_user_id": "u-9", "text": "x"}),
            adapter_name="api",
        )
        assert event.external_chat_id == "u-9"

        event = channel_registry.normalize(
            RawInbound(channel="api", payload={"company_id": 1, "text": "x"}), adapter_name="api"
        )
        assert event.external_chat_id.startswith("auto-")

    def test_invalid_choice(self):
        with pytest.raises(AdapterRejected, match="direction"):
            channel_registry.normalize(
                RawInbound(channel="api", payload={"company_id": 1, "text": "x", "direction": "sideways"}),
                adapter_name="api",
            )

    def test_non_integer_id_rejected(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(
                RawInbound(channel="api", payload={"company_id": "acme", "text": "x"}), adapter_name="api"
            )
        assert exc.value.message == "The company_id field must be an integer."

    def test_flat_fields_win_over_nested(self):
        event = channel_registry.normalize(
            RawInbound(
                channel="api",
                payload={
                    "company_id": 1,
                    "channel_chat_id": "flat-room",
                    "text": "flat",
                    "chat": {"id": "nested-room", "metadata": {"crm": "lead-7"}},
                    "message": {"text": "nested", "sender_type": "agent", "direction": "outbound"},
                },
            ),
            adapter_name="api",
        )
        assert event.external_chat_id == "flat-room"
        assert event.metadata == {"crm": "lead-7"}
        part = event.parts[0]
        assert part.text == "flat"
        assert part.sender_type == Message.SENDER_AGENT
        assert part.direction == Message.DIRECTION_OUTBOUND
        assert part.payload == {"text": "nested", "sender_type": "agent", "direction": "outbound"}

    def test_negative_media_size_rejected(self):
        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(
                RawInbound(channel="api", payload={"company_id": 1, "media_url": "https://x.example.com/a.png",
                                                   "media_size": -1}),
                adapter_name="api",
            )
        assert exc.value.message == "The media_size field must be at least 0."

    def test_sent_at_parsing(self):
        event = channel_registry.normalize(
            RawInbound(channel="api", payload={"company_id": 1, "text": "x", "sent_at": "2026-01-02T03:04:05Z"}),
            adapter_name="api",
        )
        assert event.parts[0].sent_at.isoformat() == "2026-01-02T03:04:05+00:00"

        with pytest.raises(AdapterRejected) as exc:
            channel_registry.normalize(
                RawInbound(channel="api", payload={"company_id": 1, "text": "x", "sent_at": "yesterday"}),
                adapter_name="api",
            )
        assert exc.value.message == "The sent_at field must be a valid date."


class TestTelegramAdapter:
    def update(self, **message):
        base = {"message_id": 11, "date": 1700000000, "chat": {"id": 555, "type": "private"}, "from": {"id": 555, "first_name": "Tom"}}
        base.update(message)
        return {"update_id": 1, "message": base}

    def test_text_update(self):
        event = channel_registry.normalize(
            RawInbound(channel="telegram", payload=self.update(text="Hello"), binding=binding())
        )
        assert event.external_chat_id == "555"
        assert event.name == "Tom"
        assert event.parts[0].external_message_id == "11:text"
        assert event.metadata["telegram"]["chat_type"] == "private"

    def test_bot_messages_ignored(self):
        payload = self.update(text="echo")
        payload["message"]["from"]["is_bot"] = True
        assert channel_registry.normalize(RawInbound(channel="telegram", payload=payload, binding=binding())) is None

    def test_photo_uses_file_resolver(self):
        raw = RawInbound(
            channel="telegram",
            payload=self.update(photo=[{"file_id": "small"}, {"file_id": "big", "file_size": 10}], caption="look"),
            binding=binding(),
            file_url_resolver=lambda file_id: f"https://files.example.com/{file_id}",
        )
        event = channel_registry.normalize(raw)
        types = [part.message_type for part in event.parts]
        assert types == [Message.TYPE_TEXT, Message.TYPE_IMAGE]
        assert event.parts[1].media_url == "https://files.example.com/big"

    def test_service_update_becomes_event_part(self):
        event = channel_registry.normalize(
            RawInbound(channel="telegram", payload=self.update(new_chat_title="x"), binding=binding())
        )
        assert event.parts[0].kind == PART_EVENT
        assert not event.has_replyable_content

    def test_secret_mismatch(self):
        raw = RawInbound(
            channel="telegram",
            payload=self.update(text="hi"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
            binding=binding(webhook_secret="right"),
        )
        with pytest.raises(Forbidden, match="Invalid Telegram webhook secret."):
            channel_registry.normalize(raw)

    def test_malformed_update_ignored(self):
        payload = {"update_id": 2, "message": {"message_id": 12, "chat": "not-an-object", "text": "hi"}}
        assert channel_registry.normalize(RawInbound(channel="telegram", payload=payload, binding=binding())) is None

    def test_link_url_only_for_link_parts(self):
        payload = self.update(text="see https://shop.example.com now")
        event = channel_registry.normalize(RawInbound(channel="telegram", payload=payload, binding=binding()))
        assert event.parts[0].message_type == Message.TYPE_TEXT
        assert event.parts[0].link_url is None

        event = channel_registry.normalize(
            RawInbound(channel="telegram", payload=self.update(text="https://shop.example.com"), binding=binding())
        )
        assert event.parts[0].message_type == Message.TYPE_LINK
        assert event.parts[0].link_url == "https://shop.example.com"


class TestInstagramAdapter:
    def event(self, message):
        return {"sender": {"id": "user-1"}, "recipient": {"id": "page-1"}, "timestamp": 1700000000000, "message": message}

    def test_text_and_attachment_parts(self):
        event = channel_registry.normalize(
            RawInbound(
                channel="instagram",
                payload=self.event(
                    {
                        "mid": "m-1",
                        "text": "price?",
                        "attachments": [{"type": "image", "payload": {"url": "https://cdn.example.com/p.jpg"}}],
                    }
                ),
                binding=binding(),
            )
        )
        assert event.external_chat_id == "page-1:user-1"
        assert [part.external_message_id for part in event.parts] == ["m-1:text", "m-1:attachment-0"]
        assert event.parts[1].media_url == "https://cdn.example.com/p.jpg"

    def test_echo_ignored(self):
        payload = self.event({"mid": "m-2", "text": "ours", "is_echo": True})
        assert channel_registry.normalize(RawInbound(channel="instagram", payload=payload)) is None

    def test_reaction_summary(self):
        payload = {"sender": {"id": "u"}, "recipient": {"id": "p"}, "reaction": {"reaction": "love"}}
        event = channel_registry.normalize(RawInbound(channel="instagram", payload=payload))
        assert event.parts[0].text == "Reaction: love"
        assert event.parts[0].kind == PART_EVENT

    def test_signature(self):
        body = b'{"entry": []}'
        signature = "sha256=" + hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()
        assert verify_signature(body, signature, "app-secret")
        assert not verify_signature(body, "sha256=deadbeef", "app-secret")
        assert verify_signature(body, None, None)

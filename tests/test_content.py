from app.models import Message
from app.services.content import (
    classify_content,
    is_public_url,
    limit_text,
    message_preview,
    synthesize_chat_id,
)
from app.services.timeutils import from_epoch


class TestClassifyContent:
    def test_plain_text(self):
        assert classify_content("Hello there") == (Message.TYPE_TEXT, None)

    def test_text_with_url_stays_text(self):
        message_type, link = classify_content("see https://example.com/a please")
        assert message_type == Message.TYPE_TEXT
        assert link == "https://example.com/a"

    def test_only_url_is_link(self):
        assert classify_content("https://example.com/page") == (Message.TYPE_LINK, "https://example.com/page")

    def test_file_wins_over_text(self):
        message_type, _ = classify_content("look", file_mime_type="image/png", has_file=True)
        assert message_type == Message.TYPE_IMAGE

    def test_audio_and_other_mime(self):
        assert classify_content(None, file_mime_type="audio/ogg")[0] == Message.TYPE_AUDIO
        assert classify_content(None, file_mime_type="application/pdf")[0] == Message.TYPE_FILE

    def test_explicit_non_text_type(self):
        assert classify_content("caption", explicit_type=Message.TYPE_VIDEO)[0] == Message.TYPE_VIDEO

    def test_nothing_is_file(self):
        assert classify_content("   ")[0] == Message.TYPE_FILE


class TestPreview:
    def test_text_preview_is_trimmed(self):
        assert message_preview("  hi  ", Message.TYPE_TEXT) == "hi"

    def test_placeholder_for_media(self):
        assert message_preview(None, Message.TYPE_IMAGE) == "[Image]"
        assert message_preview("", "sticker") == "[Message]"

    def test_long_text_limited(self):
        preview = message_preview("x" * 500, Message.TYPE_TEXT)
        assert preview.endswith("...")
        assert len(preview) == 163

    def test_limit_text_short_value_unchanged(self):
        assert limit_text("abc", 10) == "abc"


class TestPublicUrl:
    def test_public_host(self):
        assert is_public_url("https://cdn.example.com/a.png")

    def test_local_hosts_rejected(self):
        for url in (
            "http://localhost/a.png",
            "http://127.0.0.5/a.png",
            "http://[::1]/a.png",
            "http://0.0.0.0/a.png",
            "http://shop.local/a.png",
            "http://shop.test/a.png",
            "ftp://example.com/a.png",
            None,
        ):
            assert not is_public_url(url), url


class TestIdentifiers:
    def test_synthesized_chat_id_is_stable(self):
        first = synthesize_chat_id(1, "api", "m1", "Ann", "hi")
        assert first == synthesize_chat_id(1, "api", "m1", "Ann", "hi")
        assert first.startswith("auto-")
        assert first != synthesize_chat_id(2, "api", "m1", "Ann", "hi")

    def test_epoch_seconds_and_millis(self):
        assert from_epoch(1700000000).year == 2023
        assert from_epoch(1700000000000) == from_epoch(1700000000)

    def test_epoch_garbage_is_now(self):
        assert from_epoch("soon").year >= 2024

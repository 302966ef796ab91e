import pytest

from app.models import Conversation, Message


def text_update(text="Hello bot", message_id=10, chat_id=555):
    return {
        "update_id": 9000 + message_id,
        "message": {
            "message_id": message_id,
            "date": 1760000000,
            "chat": {"id": chat_id, "type": "private", "first_name": "Ivan"},
            "from": {"id": chat_id, "is_bot": False, "first_name": "Ivan", "last_name": "Petrov"},
            "text": text,
        },
    }


@pytest.fixture
def telegram_binding(make_company, make_assistant, make_binding):
    company = make_company()
    assistant = make_assistant(company)
    return make_binding(
        assistant,
        "telegram",
        credentials={"bot_token": "123:abc", "webhook_secret": "s3cret", "bot_username": "acme_bot"},
    )


def post_update(client, binding, update, secret="s3cret"):
    headers = {"X-Telegram-Bot-Api-Secret-Token": secret} if secret else {}
    return client.post(f"/integrations/telegram/webhook/{binding.id}", json=update, headers=headers)


class TestTelegramWebhook:
    def test_text_update_is_ingested_and_answered(self, client, db, telegram_binding, dispatchers):
        response = post_update(client, telegram_binding, text_update())

        assert response.status_code == 200
        assert response.json() == {"ok": True}

        conversation = db.query(Conversation).one()
        assert conversation.channel == "telegram"
        assert conversation.channel_chat_id == "555"
        assert conversation.name == "Ivan Petrov"
        assert conversation.assistant_channel_id == telegram_binding.id
        assert conversation.chat_metadata["telegram"]["bot_username"] == "acme_bot"

        reply = db.query(Message).filter(Message.sender_type == "assistant").one()
        assert reply.status == "sent"
        assert reply.channel_message_id == "telegram-42"
        dispatchers.get("telegram").send.assert_called_once()

    def test_redelivery_is_ignored(self, client, db, telegram_binding, fake_provider):
        post_update(client, telegram_binding, text_update())
        post_update(client, telegram_binding, text_update())

        assert db.query(Message).filter(Message.direction == "inbound").count() == 1
        assert len(fake_provider.runs) == 1

    def test_wrong_secret(self, client, db, telegram_binding):
        response = post_update(client, telegram_binding, text_update(), secret="nope")

        assert response.status_code == 403
        assert db.query(Message).count() == 0

    def test_unknown_binding_is_acknowledged(self, client, db):
        response = client.post("/integrations/telegram/webhook/999", json=text_update())

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert db.query(Conversation).count() == 0

    def test_bot_messages_are_skipped(self, client, db, telegram_binding):
        update = text_update()
        update["message"]["from"]["is_bot"] = True

        assert post_update(client, telegram_binding, update).status_code == 200
        assert db.query(Conversation).count() == 0

    def test_service_update_stored_without_reply(self, client, db, telegram_binding, fake_provider):
        update = text_update()
        del update["message"]["text"]
        update["message"]["new_chat_title"] = "Renamed"

        assert post_update(client, telegram_binding, update).status_code == 200

        message = db.query(Message).one()
        assert message.sender_type == "customer"
        assert fake_provider.runs == []

from app.models import Conversation, Message
from app.services.channels.base import PART_EVENT, InboundPart
from app.services.conversation_service import resolve_conversation
from app.services.message_service import append_message, list_messages, mark_read, store_outbound_message


def conversation_for(db, company) -> Conversation:
    return resolve_conversation(db, company_id=company.id, channel="widget", external_chat_id="s-1")


class TestAppendMessage:
    def test_duplicate_external_id_returns_stored_row(self, db, make_company):
        conversation = conversation_for(db, make_company())

        first = append_message(db, conversation, InboundPart(external_message_id="m-1", text="hello"))
        second = append_message(db, conversation, InboundPart(external_message_id="m-1", text="hello again"))

        assert first.created is True
        assert second.created is False
        assert second.message.id == first.message.id
        assert second.message.text == "hello"
        assert db.query(Message).count() == 1

    def test_messages_without_external_id_are_always_new(self, db, make_company):
        conversation = conversation_for(db, make_company())
        append_message(db, conversation, InboundPart(external_message_id=None, text="a"))
        append_message(db, conversation, InboundPart(external_message_id=None, text="a"))
        assert db.query(Message).count() == 2

    def test_snapshot_and_unread(self, db, make_company):
        conversation = conversation_for(db, make_company())
        append_message(db, conversation, InboundPart(external_message_id="m-1", text="first"))
        append_message(db, conversation, InboundPart(external_message_id="m-2", text="second"))
        append_message(db, conversation, InboundPart(external_message_id="m-1", text="first"))
        db.refresh(conversation)

        assert conversation.unread_count == 2
        assert conversation.last_message_preview == "second"
        assert conversation.last_message_at is not None

    def test_event_part_counts_as_unread_customer_turn(self, db, make_company):
        conversation = conversation_for(db, make_company())
        append_message(db, conversation, InboundPart(external_message_id="e-1", text="Message seen", kind=PART_EVENT))
        db.refresh(conversation)
        assert conversation.unread_count == 1

    def test_outbound_does_not_touch_unread(self, db, make_company):
        conversation = conversation_for(db, make_company())
        store_outbound_message(db, conversation, text="Hi from us")
        db.refresh(conversation)
        assert conversation.unread_count == 0
        assert conversation.last_message_preview == "Hi from us"


class TestMarkRead:
    def test_mark_read_is_idempotent(self, db, make_company):
        conversation = conversation_for(db, make_company())
        append_message(db, conversation, InboundPart(external_message_id="m-1", text="a"))
        append_message(db, conversation, InboundPart(external_message_id="m-2", text="b"))
        store_outbound_message(db, conversation, text="reply")

        assert mark_read(db, conversation) == 2
        assert conversation.unread_count == 0
        assert mark_read(db, conversation) == 0

        inbound = db.query(Message).filter(Message.direction == Message.DIRECTION_INBOUND).all()
        assert all(message.read_at is not None and message.status == "read" for message in inbound)


class TestListMessages:
    def test_after_id_and_limit(self, db, make_company):
        conversation = conversation_for(db, make_company())
        ids = [
            append_message(db, conversation, InboundPart(external_message_id=f"m-{i}", text=str(i))).message.id
            for i in range(5)
        ]

        assert [m.id for m in list_messages(db, conversation, after_id=ids[1])] == ids[2:]
        assert len(list_messages(db, conversation, limit=2)) == 2
        assert len(list_messages(db, conversation, limit=1000)) == 5

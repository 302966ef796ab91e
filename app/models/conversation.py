from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, JSONDict


class Conversation(Base):
    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("company_id", "channel", "channel_chat_id", name="uq_chats_company_channel_chat"),
        CheckConstraint("unread_count >= 0", name="ck_chats_unread_non_negative"),
    )

    STATUS_OPEN = "open"
    STATUS_PENDING = "pending"
    STATUS_CLOSED = "closed"
    STATUS_ARCHIVED = "archived"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    assistant_id = Column(Integer, ForeignKey("assistants.id"))
    assistant_channel_id = Column(Integer, ForeignKey("assistant_channels.id"))
    channel = Column(Text, nullable=False)  # widget, telegram, instagram, api, internal-test
    channel_chat_id = Column(Text, nullable=False)
    channel_user_id = Column(Text)
    name = Column(Text)
    avatar = Column(Text)
    status = Column(Text, nullable=False, default=STATUS_OPEN)
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_preview = Column(Text)
    last_message_at = Column(TIMESTAMP(timezone=True))
    usage_charged_at = Column(TIMESTAMP(timezone=True))
    chat_metadata = Column("metadata", JSONDict, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    assistant = relationship("Assistant")
    channel_binding = relationship("ChannelBinding")
    messages = relationship("Message", back_populates="conversation", order_by="Message.id")

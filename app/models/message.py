from sqlalchemy import BigInteger, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, JSONDict, JSONList


class Message(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (UniqueConstraint("chat_id", "channel_message_id", name="uq_chat_messages_chat_external_id"),)

    TYPE_TEXT = "text"
    TYPE_IMAGE = "image"
    TYPE_VIDEO = "video"
    TYPE_VOICE = "voice"
    TYPE_AUDIO = "audio"
    TYPE_LINK = "link"
    TYPE_FILE = "file"

    SENDER_CUSTOMER = "customer"
    SENDER_AGENT = "agent"
    SENDER_ASSISTANT = "assistant"
    SENDER_SYSTEM = "system"

    DIRECTION_INBOUND = "inbound"
    DIRECTION_OUTBOUND = "outbound"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    assistant_id = Column(Integer, ForeignKey("assistants.id"))
    sender_type = Column(Text, nullable=False)
    direction = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="received")  # received, read, sent, failed
    channel_message_id = Column(Text)
    message_type = Column(Text, nullable=False, default=TYPE_TEXT)
    text = Column(Text)
    media_url = Column(Text)
    media_mime_type = Column(Text)
    media_size = Column(BigInteger)
    link_url = Column(Text)
    attachments = Column(JSONList)
    payload = Column(JSONDict)
    sent_at = Column(TIMESTAMP(timezone=True))
    delivered_at = Column(TIMESTAMP(timezone=True))
    read_at = Column(TIMESTAMP(timezone=True))
    failed_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    conversation = relationship("Conversation", back_populates="messages")

    @property
    def is_inbound_customer(self) -> bool:
        return self.direction == self.DIRECTION_INBOUND and self.sender_type == self.SENDER_CUSTOMER

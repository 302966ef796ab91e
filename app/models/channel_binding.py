from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base, JSONDict


class ChannelBinding(Base):
    """Connection of an assistant to one messaging surface."""

    __tablename__ = "assistant_channels"
    __table_args__ = (UniqueConstraint("assistant_id", "channel", name="uq_assistant_channels_assistant_channel"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    assistant_id = Column(Integer, ForeignKey("assistants.id"), nullable=False)
    channel = Column(Text, nullable=False)  # widget, telegram, instagram, api
    name = Column(Text)
    external_account_id = Column(Text, index=True)  # bot id, instagram receiver id
    is_active = Column(Boolean, nullable=False, default=True)
    credentials = Column(JSONDict, nullable=False, default=dict)
    settings = Column(JSONDict, nullable=False, default=dict)
    binding_metadata = Column("metadata", JSONDict, nullable=False, default=dict)

    assistant = relationship("Assistant", back_populates="channels")
    company = relationship("Company")

    def credential(self, key: str) -> str:
        value = (self.credentials or {}).get(key)
        return str(value).strip() if value is not None else ""

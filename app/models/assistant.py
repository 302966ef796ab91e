from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Assistant(Base):
    __tablename__ = "assistants"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    instructions = Column(Text)
    model = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    openai_assistant_id = Column(Text)  # created lazily on first reply
    enable_file_search = Column(Boolean, nullable=False, default=False)
    enable_file_analysis = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    company = relationship("Company", back_populates="assistants")
    channels = relationship("ChannelBinding", back_populates="assistant")

from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Company(Base):
    __tablename__ = "companies"

    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=STATUS_ACTIVE)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    assistants = relationship("Assistant", back_populates="company", order_by="Assistant.id")
    subscription = relationship("CompanySubscription", back_populates="company", uselist=False)

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

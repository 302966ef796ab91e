from sqlalchemy import Column, ForeignKey, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import relationship

from app.database import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    included_chats = Column(Integer, nullable=False, default=0)
    billing_cycle_days = Column(Integer, nullable=False, default=30)
    price = Column(Numeric(12, 2), nullable=False, default=0)


class CompanySubscription(Base):
    __tablename__ = "company_subscriptions"

    STATUS_ACTIVE = "active"
    STATUS_EXPIRED = "expired"
    STATUS_CANCELLED = "cancelled"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"))
    status = Column(Text, nullable=False, default=STATUS_ACTIVE)
    quantity = Column(Integer, nullable=False, default=1)
    chat_included_override = Column(Integer)
    chat_count_current_period = Column(Integer, nullable=False, default=0)
    billing_cycle_days = Column(Integer)  # falls back to plan.billing_cycle_days
    starts_at = Column(TIMESTAMP(timezone=True))
    expires_at = Column(TIMESTAMP(timezone=True))
    period_started_at = Column(TIMESTAMP(timezone=True))
    period_ends_at = Column(TIMESTAMP(timezone=True))

    company = relationship("Company", back_populates="subscription")
    plan = relationship("SubscriptionPlan")

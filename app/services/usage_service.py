"""Subscription quota gate and window-deduplicated chat usage."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger
from app.models import CompanySubscription, Conversation
from app.services.conversation_service import is_active_for_auto_reply
from app.services.timeutils import as_utc, utcnow

logger = get_logger("usage_service")

DEFAULT_CYCLE_DAYS = 30


@dataclass
class QuotaGate:
    active: bool
    remaining: bool

    @property
    def allows_reply(self) -> bool:
        return self.active and self.remaining


def get_subscription(db: Session, company_id: int, *, for_update: bool = False) -> Optional[CompanySubscription]:
    query = db.query(CompanySubscription).filter(CompanySubscription.company_id == company_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def is_active_at(subscription: CompanySubscription, moment: Optional[datetime] = None) -> bool:
    moment = moment or utcnow()
    if subscription.status != CompanySubscription.STATUS_ACTIVE:
        return False
    if (subscription.quantity or 0) <= 0:
        return False
    starts_at = as_utc(subscription.starts_at)
    expires_at = as_utc(subscription.expires_at)
    if starts_at is not None and starts_at > moment:
        return False
    if expires_at is not None and moment >= expires_at:
        return False
    return True


def included_chats(subscription: CompanySubscription) -> int:
    if subscription.chat_included_override is not None:
        return max(int(subscription.chat_included_override), 0)
    plan_chats = subscription.plan.included_chats if subscription.plan is not None else 0
    return max(int(plan_chats or 0) * max(int(subscription.quantity or 0), 0), 0)


def _cycle_days(subscription: CompanySubscription) -> int:
    days = subscription.billing_cycle_days
    if not days and subscription.plan is not None:
        days = subscription.plan.billing_cycle_days
    return max(int(days or DEFAULT_CYCLE_DAYS), 1)


def synchronize_billing_period(
    db: Session,
    subscription: CompanySubscription,
    now: Optional[datetime] = None,
) -> CompanySubscription:
    """Roll an elapsed usage period forward (resetting the counter) and expire lapsed subscriptions."""
    now = now or utcnow()
    period_ends_at = as_utc(subscription.period_ends_at)

    if subscription.status == CompanySubscription.STATUS_ACTIVE and period_ends_at is not None and period_ends_at <= now:
        cycle = timedelta(days=_cycle_days(subscription))
        next_start = period_ends_at
        next_end = next_start + cycle
        while next_end <= now:
            next_start = next_end
            next_end = next_start + cycle

        subscription.chat_count_current_period = 0
        subscription.period_started_at = next_start
        subscription.period_ends_at = next_end
        logger.info(
            "Billing period rolled forward",
            extra={"context": {"subscription_id": subscription.id, "period_ends_at": next_end.isoformat()}},
        )

    expires_at = as_utc(subscription.expires_at)
    if subscription.status == CompanySubscription.STATUS_ACTIVE and expires_at is not None and now >= expires_at:
        subscription.status = CompanySubscription.STATUS_EXPIRED
        logger.info("Subscription expired", extra={"context": {"subscription_id": subscription.id}})

    db.flush()
    return subscription


def gate(db: Session, company_id: int, now: Optional[datetime] = None) -> QuotaGate:
    """Whether an automated reply is financially permitted for the company right now."""
    subscription = get_subscription(db, company_id)
    if subscription is None:
        return QuotaGate(active=False, remaining=False)

    synchronize_billing_period(db, subscription, now)
    active = is_active_at(subscription, now)
    used = int(subscription.chat_count_current_period or 0)
    return QuotaGate(active=active, remaining=used < included_chats(subscription))


def record_usage(
    db: Session,
    conversation: Conversation,
    event_at: Optional[datetime] = None,
    *,
    window_hours: Optional[int] = None,
) -> bool:
    """Count the conversation as one billable unit at most once per rolling window.

    The window check and the stamp are one conditional UPDATE on the chat row,
    so concurrent deliveries for the same chat cannot both pass it.
    """
    event_at = as_utc(event_at) or utcnow()
    window = timedelta(hours=max(int(window_hours or settings.chat_usage_window_hours), 1))

    subscription = get_subscription(db, conversation.company_id, for_update=True)
    if subscription is None:
        return False

    synchronize_billing_period(db, subscription)
    if not is_active_at(subscription, event_at):
        return False

    if not is_active_for_auto_reply(conversation):
        return False

    db.flush()
    stamped = db.execute(
        update(Conversation)
        .where(
            Conversation.id == conversation.id,
            or_(Conversation.usage_charged_at.is_(None), Conversation.usage_charged_at <= event_at - window),
        )
        .values(usage_charged_at=event_at)
        .execution_options(synchronize_session=False)
    )
    if stamped.rowcount == 0:
        return False

    db.execute(
        update(CompanySubscription)
        .where(CompanySubscription.id == subscription.id)
        .values(chat_count_current_period=CompanySubscription.chat_count_current_period + 1)
        .execution_options(synchronize_session=False)
    )
    db.expire(conversation, ["usage_charged_at"])
    db.expire(subscription, ["chat_count_current_period"])

    logger.info(
        "Chat usage recorded",
        extra={"context": {"conversation_id": conversation.id, "company_id": conversation.company_id}},
    )
    return True

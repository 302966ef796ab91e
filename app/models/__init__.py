from app.models.assistant import Assistant
from app.models.channel_binding import ChannelBinding
from app.models.company import Company
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.subscription import CompanySubscription, SubscriptionPlan

__all__ = [
    "Company",
    "Assistant",
    "ChannelBinding",
    "Conversation",
    "Message",
    "SubscriptionPlan",
    "CompanySubscription",
]

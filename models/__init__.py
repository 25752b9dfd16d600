# models/__init__.py
from .base import Base
from .timestamp_mixin import TimestampMixin
# Profile first since every other table references it
from .profile import Profile
from .instagram_message import InstagramMessage, Channel, MessageIntent, RepliedBy
from .automation_rule import AutomationRule, TriggerType, MatchType
from .business_rule import BusinessRule, RuleType
from .auto_reply_queue import AutoReplyQueue, QueueStatus
from .auto_reply_log import AutoReplyLog, ReplyType


__all__ = [
    "Base",
    "TimestampMixin",
    "Profile",
    "InstagramMessage",
    "Channel",
    "MessageIntent",
    "RepliedBy",
    "AutomationRule",
    "TriggerType",
    "MatchType",
    "BusinessRule",
    "RuleType",
    "AutoReplyQueue",
    "QueueStatus",
    "AutoReplyLog",
    "ReplyType",
]

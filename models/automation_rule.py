import enum
from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import TimestampMixin
from datetime import datetime
from typing import Optional


class TriggerType(str, enum.Enum):
    DM = "dm"
    COMMENT = "comment"
    BOTH = "both"


class MatchType(str, enum.Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"


class AutomationRule(Base, TimestampMixin):
    """A business-defined trigger -> reply pair."""
    __tablename__ = "automation_rules"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    trigger_type: Mapped[str] = mapped_column(String(20), nullable=False, default=TriggerType.BOTH.value)
    trigger_text: Mapped[str] = mapped_column(String(500), nullable=False)
    reply_text: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(String(20), nullable=False, default=MatchType.EXACT.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AutomationRule(id={self.id}, trigger='{self.trigger_text}', match='{self.match_type}')>"

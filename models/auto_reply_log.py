import enum
from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import utc_now
from datetime import datetime
from typing import Optional


class ReplyType(str, enum.Enum):
    AUTOMATION = "automation"
    AI_APPROVED = "ai_approved"
    MANUAL = "manual"


class AutoReplyLog(Base):
    """Append-only audit record of every reply send attempt."""
    __tablename__ = "auto_reply_logs"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    message_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    original_message_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reply_text: Mapped[str] = mapped_column(Text, nullable=False)
    reply_type: Mapped[str] = mapped_column(String(20), nullable=False)
    automation_rule_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    instagram_reply_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<AutoReplyLog(id={self.id}, message_id='{self.message_id}', success={self.success})>"

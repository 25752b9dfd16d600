import enum
from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import TimestampMixin
from datetime import datetime
from typing import Optional


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AutoReplyQueue(Base, TimestampMixin):
    """An AI-drafted reply waiting for human approval."""
    __tablename__ = "auto_reply_queue"
    __table_args__ = (
        UniqueConstraint("user_id", "message_id", name="uq_auto_reply_queue_user_message"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    suggested_reply: Mapped[str] = mapped_column(Text, nullable=False)
    detected_language: Mapped[str] = mapped_column(String(5), nullable=False, default="en")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=QueueStatus.PENDING.value, index=True)
    final_reply: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Set while an approval is sending; a second approver cannot claim the entry
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AutoReplyQueue(id={self.id}, message_id='{self.message_id}', status='{self.status}')>"

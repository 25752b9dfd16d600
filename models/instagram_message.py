import enum
from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import TimestampMixin, utc_now
from datetime import datetime
from typing import Optional


class Channel(str, enum.Enum):
    DM = "dm"
    COMMENT = "comment"


class MessageIntent(str, enum.Enum):
    PRICE_INQUIRY = "price_inquiry"
    AVAILABILITY = "availability"
    LOCATION = "location"
    GENERAL_QUESTION = "general_question"
    COMPLAINT = "complaint"
    COMPLIMENT = "compliment"
    OTHER = "other"


class RepliedBy(str, enum.Enum):
    INSTAGRAM_AUTO = "instagram_auto"
    AUTOMATION = "automation"
    AI_APPROVED = "ai_approved"
    MANUAL = "manual"


class InstagramMessage(Base, TimestampMixin):
    """An inbound Instagram DM or comment received by a business."""
    __tablename__ = "instagram_messages"
    __table_args__ = (
        UniqueConstraint("user_id", "message_id", name="uq_instagram_messages_user_message"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default=Channel.DM.value)
    message_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    post_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    sender_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Classification (filled lazily, never recomputed once complete)
    is_question: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    intent: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    intent_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    detected_language: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    ai_reply_suggestion_fi: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_reply_suggestion_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reply state
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    replied_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reply_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reply_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def has_cached_analysis(self) -> bool:
        return bool(self.intent and self.ai_reply_suggestion_fi and self.ai_reply_suggestion_en)

    def __repr__(self):
        return f"<InstagramMessage(id={self.id}, type='{self.message_type}', message_id='{self.message_id}')>"

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import TimestampMixin
from datetime import date, datetime
from typing import Optional


class Profile(Base, TimestampMixin):
    """A business account with its Instagram connection and plan state."""
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Instagram connection
    instagram_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram_user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    facebook_page_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    last_instagram_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_comment_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Per-channel auto-reply toggles
    auto_reply_dms_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_reply_comments_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Subscription and monthly usage
    subscription_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="trialing")
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    monthly_message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_message_reset: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    @property
    def instagram_connected(self) -> bool:
        return bool(self.instagram_access_token)

    def auto_reply_enabled_for(self, channel: str) -> bool:
        if channel == "comment":
            return bool(self.auto_reply_comments_enabled)
        return bool(self.auto_reply_dms_enabled)

    def __repr__(self):
        return f"<Profile(id={self.id}, email='{self.email}')>"

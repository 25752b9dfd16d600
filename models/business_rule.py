import enum
from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, String, Text
from sqlalchemy.orm import mapped_column, Mapped
from models.base import Base, BigIntId
from models.timestamp_mixin import TimestampMixin
from typing import Any, Dict, Optional


class RuleType(str, enum.Enum):
    PRICE = "price"
    BUSINESS_INFO = "business_info"
    INVENTORY = "inventory"
    FAQ = "faq"
    OTHER = "other"


class BusinessRule(Base, TimestampMixin):
    """A key/value business fact used to ground AI replies."""
    __tablename__ = "business_rules"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True, index=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False, default=RuleType.OTHER.value)
    rule_key: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_value: Mapped[str] = mapped_column(Text, nullable=False)
    rule_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<BusinessRule(id={self.id}, type='{self.rule_type}', key='{self.rule_key}')>"

from typing import Any, Dict, List, Optional

from sqlalchemy import update

from database.connection import get_db_session
from models.automation_rule import AutomationRule, MatchType, TriggerType
from models.timestamp_mixin import utc_now
from utils.logger import logger

EDITABLE_FIELDS = ("trigger_type", "trigger_text", "reply_text", "match_type", "is_active")


class AutomationRuleRepository:
    """Repository for trigger -> reply automation rules."""

    @staticmethod
    def list_rules(user_id: int, active_only: bool = False) -> List[AutomationRule]:
        """Rules in creation order, which is also their matching priority."""
        with get_db_session() as session:
            query = session.query(AutomationRule).filter(AutomationRule.user_id == user_id)
            if active_only:
                query = query.filter(AutomationRule.is_active.is_(True))
            return query.order_by(AutomationRule.created_at.asc(), AutomationRule.id.asc()).all()

    @staticmethod
    def get_rule(user_id: int, rule_id: int) -> Optional[AutomationRule]:
        with get_db_session() as session:
            return session.query(AutomationRule).filter_by(user_id=user_id, id=rule_id).first()

    @staticmethod
    def create_rule(user_id: int, data: Dict[str, Any]) -> AutomationRule:
        with get_db_session() as session:
            try:
                rule = AutomationRule(
                    user_id=user_id,
                    trigger_type=data.get("trigger_type") or TriggerType.BOTH.value,
                    trigger_text=data["trigger_text"].strip(),
                    reply_text=data["reply_text"].strip(),
                    match_type=data.get("match_type") or MatchType.EXACT.value,
                    is_active=data.get("is_active", True),
                )
                session.add(rule)
                session.commit()
                session.refresh(rule)
                logger.info(f"✅ Created automation rule {rule.id} for profile {user_id}")
                return rule
            except Exception as e:
                logger.error(f"❌ Failed to create automation rule: {e}")
                session.rollback()
                raise

    @staticmethod
    def update_rule(user_id: int, rule_id: int, data: Dict[str, Any]) -> Optional[AutomationRule]:
        with get_db_session() as session:
            try:
                rule = session.query(AutomationRule).filter_by(user_id=user_id, id=rule_id).first()
                if rule is None:
                    return None
                for field in EDITABLE_FIELDS:
                    if field in data:
                        value = data[field]
                        setattr(rule, field, value.strip() if isinstance(value, str) else value)
                session.commit()
                session.refresh(rule)
                logger.info(f"Updated automation rule {rule_id}")
                return rule
            except Exception as e:
                logger.error(f"❌ Failed to update automation rule {rule_id}: {e}")
                session.rollback()
                raise

    @staticmethod
    def delete_rule(user_id: int, rule_id: int) -> bool:
        with get_db_session() as session:
            try:
                deleted = session.query(AutomationRule).filter_by(user_id=user_id, id=rule_id).delete()
                session.commit()
                return deleted > 0
            except Exception as e:
                logger.error(f"❌ Failed to delete automation rule {rule_id}: {e}")
                session.rollback()
                raise

    @staticmethod
    def record_usage(rule_id: int) -> None:
        """Atomic usage_count + 1 and last_used_at after the rule fired."""
        with get_db_session() as session:
            try:
                session.execute(
                    update(AutomationRule)
                    .where(AutomationRule.id == rule_id)
                    .values(usage_count=AutomationRule.usage_count + 1, last_used_at=utc_now())
                )
                session.commit()
            except Exception as e:
                logger.error(f"❌ Failed to record usage of automation rule {rule_id}: {e}")
                session.rollback()
                raise

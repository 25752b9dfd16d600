from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from database.connection import SessionLocal
from models.business_rule import BusinessRule, RuleType
from utils.logger import logger

EDITABLE_FIELDS = ("rule_type", "rule_key", "rule_value", "rule_metadata", "is_active")


def list_business_rules(user_id: int, active_only: bool = False) -> List[BusinessRule]:
    session: Session = SessionLocal()
    try:
        query = session.query(BusinessRule).filter(BusinessRule.user_id == user_id)
        if active_only:
            query = query.filter(BusinessRule.is_active.is_(True))
        return query.order_by(BusinessRule.rule_type.asc(), BusinessRule.id.asc()).all()
    finally:
        session.close()


def create_business_rule(user_id: int, data: Dict[str, Any]) -> BusinessRule:
    session: Session = SessionLocal()
    try:
        rule = BusinessRule(
            user_id=user_id,
            rule_type=data.get("rule_type") or RuleType.OTHER.value,
            rule_key=data["rule_key"].strip(),
            rule_value=data["rule_value"].strip(),
            rule_metadata=data.get("rule_metadata"),
            is_active=data.get("is_active", True),
        )
        session.add(rule)
        session.commit()
        session.refresh(rule)
        logger.info(f"✅ Created business rule {rule.id} ({rule.rule_type}: {rule.rule_key})")
        return rule
    except Exception as e:
        logger.error(f"❌ DB error while creating business rule: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def update_business_rule(user_id: int, rule_id: int, data: Dict[str, Any]) -> Optional[BusinessRule]:
    session: Session = SessionLocal()
    try:
        rule = session.query(BusinessRule).filter_by(user_id=user_id, id=rule_id).first()
        if rule is None:
            return None
        for field in EDITABLE_FIELDS:
            if field in data:
                value = data[field]
                setattr(rule, field, value.strip() if isinstance(value, str) else value)
        session.commit()
        session.refresh(rule)
        return rule
    except Exception as e:
        logger.error(f"❌ DB error while updating business rule {rule_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def delete_business_rule(user_id: int, rule_id: int) -> bool:
    session: Session = SessionLocal()
    try:
        deleted = session.query(BusinessRule).filter_by(user_id=user_id, id=rule_id).delete()
        session.commit()
        return deleted > 0
    except Exception as e:
        logger.error(f"❌ DB error while deleting business rule {rule_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()

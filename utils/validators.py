from typing import Any, Dict, List, Optional

from models.business_rule import RuleType

VALID_RULE_TYPES = [t.value for t in RuleType]


def validate_business_rule(data: Dict[str, Any], partial: bool = False) -> List[str]:
    """Errors for a business rule payload; ``partial`` only checks the fields present."""
    errors = []
    for field in ("rule_type", "rule_key", "rule_value"):
        if partial and field not in data:
            continue
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{field} is required")

    rule_type = data.get("rule_type")
    if rule_type and rule_type not in VALID_RULE_TYPES:
        errors.append("Invalid rule_type. Must be one of: price, business_info, inventory, faq, other")
    return errors


def parse_user_id(value: Any) -> Optional[int]:
    try:
        user_id = int(value)
    except (TypeError, ValueError):
        return None
    return user_id if user_id > 0 else None


def parse_optional_bool(value: Any) -> Optional[bool]:
    """JSON booleans pass through; 'true'/'false' strings are accepted; anything else is None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None

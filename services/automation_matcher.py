"""
Automation rule matching.

Rules are evaluated in the order they are given; the first match wins. The
repository returns rules oldest-first, so rule creation order is the
priority order.
"""
from typing import Any, Dict, List, Optional, Sequence

from models.automation_rule import AutomationRule, MatchType, TriggerType
from utils.logger import logger

MAX_TRIGGER_LENGTH = 500
MAX_REPLY_LENGTH = 1000

VALID_TRIGGER_TYPES = [t.value for t in TriggerType]
VALID_MATCH_TYPES = [m.value for m in MatchType]


def _normalize(text: Optional[str]) -> str:
    return (text or "").lower().strip()


def _matches(normalized_message: str, rule: AutomationRule) -> bool:
    normalized_trigger = _normalize(rule.trigger_text)

    if rule.match_type == MatchType.CONTAINS.value:
        return normalized_trigger in normalized_message
    if rule.match_type == MatchType.STARTS_WITH.value:
        return normalized_message.startswith(normalized_trigger)
    # 'exact' and anything unrecognised
    return normalized_message == normalized_trigger


def _applies_to_channel(rule: AutomationRule, channel: str) -> bool:
    if not rule.is_active:
        return False
    return rule.trigger_type == channel or rule.trigger_type == TriggerType.BOTH.value


def find_matching_automation_rule(message_text: str, channel: str, rules: Sequence[AutomationRule]) -> Optional[AutomationRule]:
    """Return the first active rule for ``channel`` whose trigger matches ``message_text``."""
    if not message_text or not rules:
        return None

    normalized_message = _normalize(message_text)

    for rule in rules:
        if not _applies_to_channel(rule, channel):
            continue
        if _matches(normalized_message, rule):
            logger.info(f"✅ Automation rule matched: '{rule.trigger_text}' -> '{rule.reply_text}'")
            return rule

    return None


def test_automation_rule(rule: AutomationRule, test_messages: List[str]) -> List[Dict[str, Any]]:
    """Check a single rule against sample messages, ignoring channel and active flag."""
    return [
        {"message": message, "matches": _matches(_normalize(message), rule)}
        for message in test_messages
    ]


# Not a pytest test despite the name
test_automation_rule.__test__ = False


def validate_automation_rule(data: Dict[str, Any]) -> List[str]:
    """Validate a rule payload. Returns a list of error strings (empty if valid)."""
    errors: List[str] = []

    trigger_text = data.get("trigger_text")
    reply_text = data.get("reply_text")
    trigger_type = data.get("trigger_type")
    match_type = data.get("match_type")

    if not isinstance(trigger_text, str) or not trigger_text.strip():
        errors.append("Trigger text is required")

    if not isinstance(reply_text, str) or not reply_text.strip():
        errors.append("Reply text is required")

    if trigger_type not in VALID_TRIGGER_TYPES:
        errors.append("Trigger type must be comment, dm, or both")

    if match_type and match_type not in VALID_MATCH_TYPES:
        errors.append("Match type must be exact, contains, or starts_with")

    if isinstance(trigger_text, str) and len(trigger_text) > MAX_TRIGGER_LENGTH:
        errors.append(f"Trigger text must be {MAX_TRIGGER_LENGTH} characters or less")

    if isinstance(reply_text, str) and len(reply_text) > MAX_REPLY_LENGTH:
        errors.append(f"Reply text must be {MAX_REPLY_LENGTH} characters or less")

    return errors


def get_automation_rule_stats(rules: Sequence[AutomationRule]) -> Dict[str, Any]:
    """Summarise rule counts and usage for the settings page."""
    stats: Dict[str, Any] = {
        "total_rules": len(rules),
        "active_rules": sum(1 for r in rules if r.is_active),
        "comment_rules": sum(1 for r in rules if r.trigger_type == TriggerType.COMMENT.value),
        "dm_rules": sum(1 for r in rules if r.trigger_type == TriggerType.DM.value),
        "both_rules": sum(1 for r in rules if r.trigger_type == TriggerType.BOTH.value),
        "total_usage_count": sum(r.usage_count or 0 for r in rules),
        "most_used_rule_id": None,
    }

    if rules:
        most_used = max(rules, key=lambda r: r.usage_count or 0)
        stats["most_used_rule_id"] = most_used.id

    return stats

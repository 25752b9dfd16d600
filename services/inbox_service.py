from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.auto_reply_log import ReplyType
from models.auto_reply_queue import AutoReplyQueue, QueueStatus
from models.instagram_message import Channel, InstagramMessage, MessageIntent, RepliedBy
from models.timestamp_mixin import utc_now
from repository import profile_repository, reply_log_repository
from repository.message_repository import MessageRepository
from repository.reply_queue_repository import ReplyQueueRepository
from services import instagram_service
from utils.logger import logger

INBOX_FILTERS = ("all", "leads", "pending_approval", "unanswered", "answered")
PENDING_APPROVAL = "pending_approval"

DEFAULT_ARCHIVE_DAYS = 30
MIN_ARCHIVE_DAYS, MAX_ARCHIVE_DAYS = 1, 365


class MessageNotFoundError(Exception):
    pass


class AlreadyQueuedError(Exception):
    pass


class LeadInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_lead: bool = Field(alias="isLead")
    score: int
    reason: str


_LEAD_TABLE = {
    MessageIntent.PRICE_INQUIRY.value: (True, 10, "High-value: Price inquiry"),
    MessageIntent.AVAILABILITY.value: (True, 8, "High-value: Availability question"),
    MessageIntent.LOCATION.value: (True, 8, "High-value: Location request"),
    MessageIntent.GENERAL_QUESTION.value: (True, 5, "Medium-value: General question"),
    MessageIntent.COMPLAINT.value: (True, 5, "Needs attention: Complaint"),
    MessageIntent.COMPLIMENT.value: (False, 0, "Low priority"),
}


def calculate_lead_info(intent: Optional[str]) -> LeadInfo:
    is_lead, score, reason = _LEAD_TABLE.get(intent or "", (False, 0, "No intent classified"))
    return LeadInfo(is_lead=is_lead, score=score, reason=reason)


def _message_item(message) -> Dict[str, Any]:
    return {
        "id": f"{message.message_type}-{message.id}",
        "type": message.message_type,
        "source_id": message.message_id,
        "sender_id": message.sender_id,
        "sender_username": message.sender_username,
        "sender_name": message.sender_name,
        "message_text": message.message_text or "",
        "timestamp": message.timestamp,
        "intent": message.intent,
        "intent_confidence": message.intent_confidence,
        "detected_language": message.detected_language,
        "ai_suggestion_fi": message.ai_reply_suggestion_fi,
        "ai_suggestion_en": message.ai_reply_suggestion_en,
        "replied_at": message.replied_at,
        "replied_by": message.replied_by,
        "reply_text": message.reply_text,
        "conversation_id": message.conversation_id,
        "post_id": message.post_id,
        "lead_info": calculate_lead_info(message.intent),
    }


def _queue_item(entry, related) -> Dict[str, Any]:
    intent = related.intent if related else None
    return {
        "id": f"pending-{entry.id}",
        "type": PENDING_APPROVAL,
        "source_id": entry.message_id,
        "sender_id": entry.sender_id or "",
        "sender_username": entry.sender_username,
        "sender_name": related.sender_name if related else None,
        "message_text": entry.message_text,
        "timestamp": entry.created_at,
        "intent": intent,
        "intent_confidence": related.intent_confidence if related else None,
        "detected_language": entry.detected_language,
        "ai_suggestion_fi": entry.suggested_reply if entry.detected_language == "fi" else None,
        "ai_suggestion_en": entry.suggested_reply if entry.detected_language != "fi" else None,
        "replied_at": None,
        "replied_by": None,
        "reply_text": None,
        "conversation_id": entry.conversation_id,
        "post_id": entry.message_id if entry.message_type == Channel.COMMENT.value else None,
        "queue_item_id": entry.id,
        "status": entry.status,
        "lead_info": calculate_lead_info(intent),
    }


def _apply_filter(items: List[Dict[str, Any]], inbox_filter: str) -> List[Dict[str, Any]]:
    if inbox_filter == "leads":
        return [i for i in items if i["lead_info"].is_lead]
    if inbox_filter == PENDING_APPROVAL:
        return [i for i in items if i["type"] == PENDING_APPROVAL]
    if inbox_filter == "unanswered":
        return [i for i in items if not i["replied_at"]]
    if inbox_filter == "answered":
        return [i for i in items if i["replied_at"]]
    return list(items)


def sort_inbox_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Score desc, then pending approval, then unanswered, then newest first."""
    ordered = sorted(items, key=lambda i: i["timestamp"] or datetime.min, reverse=True)
    ordered.sort(key=lambda i: (
        -i["lead_info"].score,
        0 if i["type"] == PENDING_APPROVAL else 1,
        1 if i["replied_at"] else 0,
    ))
    return ordered


def build_unified_inbox(user_id: int, inbox_filter: str = "all") -> Dict[str, Any]:
    """DMs, comments and pending approvals in one list, plus per-bucket stats."""
    messages = MessageRepository.list_messages(user_id)
    items = [_message_item(m) for m in messages]

    pending = ReplyQueueRepository.list_by_status(user_id, QueueStatus.PENDING.value, limit=None)
    related = {m.message_id: m for m in MessageRepository.get_by_message_ids(user_id, [e.message_id for e in pending])}
    items.extend(_queue_item(entry, related.get(entry.message_id)) for entry in pending)

    filtered = sort_inbox_items(_apply_filter(items, inbox_filter))
    return {
        "items": filtered,
        "total": len(filtered),
        "stats": {
            "total": len(items),
            "leads": sum(1 for i in items if i["lead_info"].is_lead),
            "pending_approval": sum(1 for i in items if i["type"] == PENDING_APPROVAL),
            "unanswered": sum(1 for i in items if not i["replied_at"]),
            "answered": sum(1 for i in items if i["replied_at"]),
        },
    }


def send_quick_reply(user_id: int, item_type: str, source_id: str, reply_text: str,
                     sender_id: Optional[str] = None) -> str:
    """Manual reply from the inbox. Logs the attempt either way; send errors propagate."""
    profile = profile_repository.get_profile_by_id(user_id)
    message = MessageRepository.get_by_message_id(user_id, source_id)

    try:
        if item_type == Channel.COMMENT.value:
            reply_id = instagram_service.send_comment_reply(profile, source_id, reply_text)
        elif item_type == Channel.DM.value:
            if not sender_id or not profile.facebook_page_id:
                raise ValueError("Sender ID and Page ID required for DM reply")
            reply_id = instagram_service.send_dm_reply(profile, sender_id, reply_text)
        else:
            raise ValueError('Invalid item type. Must be "comment" or "dm"')
    except Exception as e:
        logger.error(f"❌ Quick reply failed for {source_id}: {e}")
        reply_log_repository.create_reply_log(
            user_id, item_type, source_id, reply_text, ReplyType.MANUAL.value,
            success=False,
            original_message_text=message.message_text if message else None,
            sender_username=message.sender_username if message else None,
            error_message=str(e),
        )
        raise

    MessageRepository.mark_replied(user_id, source_id, reply_text, RepliedBy.MANUAL.value, reply_id)
    reply_log_repository.create_reply_log(
        user_id, item_type, source_id, reply_text, ReplyType.MANUAL.value,
        success=True,
        original_message_text=message.message_text if message else None,
        sender_username=message.sender_username if message else None,
        instagram_reply_id=reply_id,
    )
    logger.info(f"✅ Quick reply sent for {item_type} {source_id}")
    return reply_id


def ignore_messages(user_id: int, message_ids: List[str]) -> int:
    return MessageRepository.archive_messages(user_id, message_ids)


def add_to_pending(user_id: int, item_type: str, source_id: str, ai_suggestion: str) -> AutoReplyQueue:
    """Put a stored message's reply suggestion into the approval queue by hand."""
    message = MessageRepository.get_by_message_id(user_id, source_id)
    if message is None or message.message_type != item_type:
        raise MessageNotFoundError(f"{item_type} {source_id} not found")

    entry = ReplyQueueRepository.enqueue(
        user_id,
        source_id,
        message_type=message.message_type,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        sender_username=message.sender_username,
        message_text=message.message_text or "",
        suggested_reply=ai_suggestion,
        detected_language=message.detected_language or "en",
    )
    if entry is None:
        raise AlreadyQueuedError(f"{item_type} {source_id} already has a queued reply")
    logger.info(f"📝 Added {item_type} {source_id} to pending approval")
    return entry


def mark_message_replied(user_id: int, message_pk: int, replied: bool,
                         reply_text: Optional[str] = None) -> Optional[InstagramMessage]:
    return MessageRepository.set_reply_status(
        user_id, message_pk, replied, reply_text, replied_by=RepliedBy.MANUAL.value
    )


def archive_old_answered(user_id: int, days_old: int = DEFAULT_ARCHIVE_DAYS) -> Dict[str, int]:
    """Archive DMs and comments answered more than ``days_old`` days ago."""
    if not MIN_ARCHIVE_DAYS <= days_old <= MAX_ARCHIVE_DAYS:
        raise ValueError(f"daysOld must be between {MIN_ARCHIVE_DAYS} and {MAX_ARCHIVE_DAYS}")
    cutoff = utc_now() - timedelta(days=days_old)
    return MessageRepository.archive_answered_before(user_id, cutoff)

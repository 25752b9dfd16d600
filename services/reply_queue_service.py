from typing import List, Optional

from models.auto_reply_log import ReplyType
from models.auto_reply_queue import AutoReplyQueue, QueueStatus
from models.instagram_message import Channel, RepliedBy
from repository import profile_repository, reply_log_repository
from repository.message_repository import MessageRepository
from repository.reply_queue_repository import ReplyQueueRepository
from services import instagram_service
from utils.logger import logger

DEFAULT_REJECTION_REASON = "Rejected by user"


class QueueItemNotFoundError(Exception):
    pass


class QueueItemAlreadyProcessedError(Exception):
    """The entry is already approved or rejected; terminal states are final."""


def list_pending(user_id: int, limit: int = 50) -> List[AutoReplyQueue]:
    return ReplyQueueRepository.list_by_status(user_id, QueueStatus.PENDING.value, limit)


def _get_pending_entry(user_id: int, queue_item_id: int) -> AutoReplyQueue:
    entry = ReplyQueueRepository.get(user_id, queue_item_id)
    if entry is None:
        raise QueueItemNotFoundError(f"Queue item {queue_item_id} not found")
    if entry.status != QueueStatus.PENDING.value:
        raise QueueItemAlreadyProcessedError(f"Queue item {queue_item_id} is already {entry.status}")
    return entry


def approve_queue_item(user_id: int, queue_item_id: int, edited_reply: Optional[str] = None) -> AutoReplyQueue:
    """
    Send the queued reply (or the edited text) and mark the entry approved.

    The entry is claimed before sending, so a concurrent approve or reject
    gets QueueItemAlreadyProcessedError instead of a second send. A failed
    send turns the entry into ``rejected`` with the error as reason, writes a
    failure log, and re-raises the send error.
    """
    entry = _get_pending_entry(user_id, queue_item_id)
    if not ReplyQueueRepository.claim(user_id, queue_item_id):
        raise QueueItemAlreadyProcessedError(f"Queue item {queue_item_id} is being processed by another request")

    profile = profile_repository.get_profile_by_id(user_id)
    reply_text = edited_reply or entry.suggested_reply

    try:
        if entry.message_type == Channel.COMMENT.value:
            reply_id = instagram_service.send_comment_reply(profile, entry.message_id, reply_text)
        else:
            reply_id = instagram_service.send_dm_reply(profile, entry.sender_id, reply_text)
    except Exception as e:
        logger.error(f"❌ Approved reply failed to send for queue item {queue_item_id}: {e}")
        ReplyQueueRepository.mark_rejected(user_id, queue_item_id, str(e))
        reply_log_repository.create_reply_log(
            user_id, entry.message_type, entry.message_id, reply_text, ReplyType.AI_APPROVED.value,
            success=False,
            original_message_text=entry.message_text,
            sender_username=entry.sender_username,
            error_message=str(e),
        )
        raise

    # The reply is out; record it before touching the queue state
    reply_log_repository.create_reply_log(
        user_id, entry.message_type, entry.message_id, reply_text, ReplyType.AI_APPROVED.value,
        success=True,
        original_message_text=entry.message_text,
        sender_username=entry.sender_username,
        instagram_reply_id=reply_id,
    )
    MessageRepository.mark_replied(user_id, entry.message_id, reply_text, RepliedBy.AI_APPROVED.value, reply_id)
    if not ReplyQueueRepository.mark_approved(user_id, queue_item_id, edited_reply or None):
        logger.warning(f"⚠️ Queue item {queue_item_id} changed state while its reply was sending")

    logger.info(f"✅ Approved reply sent for queue item {queue_item_id}")
    return ReplyQueueRepository.get(user_id, queue_item_id)


def reject_queue_item(user_id: int, queue_item_id: int, reason: Optional[str] = None) -> AutoReplyQueue:
    _get_pending_entry(user_id, queue_item_id)
    if not ReplyQueueRepository.mark_rejected(user_id, queue_item_id, reason or DEFAULT_REJECTION_REASON,
                                              unclaimed_only=True):
        raise QueueItemAlreadyProcessedError(f"Queue item {queue_item_id} was processed concurrently")
    logger.info(f"🚫 Queue item {queue_item_id} rejected")
    return ReplyQueueRepository.get(user_id, queue_item_id)

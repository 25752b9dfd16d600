from datetime import timedelta
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from database.connection import get_db_session
from models.auto_reply_queue import AutoReplyQueue, QueueStatus
from models.timestamp_mixin import utc_now
from utils.logger import logger

CLAIM_TIMEOUT = timedelta(minutes=5)


class ReplyQueueRepository:
    """Repository for AI-drafted replies awaiting approval."""

    @staticmethod
    def enqueue(user_id: int, message_id: str, **fields) -> Optional[AutoReplyQueue]:
        """Create a pending entry. Returns None if the message is already queued."""
        with get_db_session() as session:
            try:
                entry = AutoReplyQueue(
                    user_id=user_id,
                    message_id=message_id,
                    status=QueueStatus.PENDING.value,
                    **fields,
                )
                session.add(entry)
                session.commit()
                session.refresh(entry)
                logger.info(f"📥 Queued reply for message '{message_id}' (entry {entry.id})")
                return entry
            except IntegrityError:
                session.rollback()
                logger.info(f"Message '{message_id}' already has a queue entry")
                return None
            except Exception as e:
                logger.error(f"❌ Failed to queue reply for message '{message_id}': {e}")
                session.rollback()
                raise

    @staticmethod
    def get(user_id: int, entry_id: int) -> Optional[AutoReplyQueue]:
        with get_db_session() as session:
            return session.query(AutoReplyQueue).filter_by(user_id=user_id, id=entry_id).first()

    @staticmethod
    def list_by_status(user_id: int, status: str = QueueStatus.PENDING.value,
                       limit: Optional[int] = 50) -> List[AutoReplyQueue]:
        with get_db_session() as session:
            query = (
                session.query(AutoReplyQueue)
                .filter(AutoReplyQueue.user_id == user_id, AutoReplyQueue.status == status)
                .order_by(AutoReplyQueue.created_at.desc(), AutoReplyQueue.id.desc())
            )
            if limit:
                query = query.limit(limit)
            return query.all()

    @staticmethod
    def _unclaimed(now):
        return or_(AutoReplyQueue.claimed_at.is_(None), AutoReplyQueue.claimed_at < now - CLAIM_TIMEOUT)

    @staticmethod
    def claim(user_id: int, entry_id: int) -> bool:
        """
        Reserve a pending entry for one approver before its reply is sent.
        False when the entry is finished or another approver holds a live claim.
        A claim older than CLAIM_TIMEOUT is treated as abandoned.
        """
        now = utc_now()
        with get_db_session() as session:
            try:
                result = session.execute(
                    update(AutoReplyQueue)
                    .where(
                        AutoReplyQueue.user_id == user_id,
                        AutoReplyQueue.id == entry_id,
                        AutoReplyQueue.status == QueueStatus.PENDING.value,
                        ReplyQueueRepository._unclaimed(now),
                    )
                    .values(claimed_at=now, updated_at=now)
                )
                session.commit()
                return result.rowcount == 1
            except Exception as e:
                logger.error(f"❌ Failed to claim queue entry {entry_id}: {e}")
                session.rollback()
                raise

    @staticmethod
    def mark_approved(user_id: int, entry_id: int, final_reply: Optional[str]) -> bool:
        return ReplyQueueRepository._finish(
            user_id, entry_id, False,
            status=QueueStatus.APPROVED.value,
            approved_at=utc_now(),
            final_reply=final_reply,
        )

    @staticmethod
    def mark_rejected(user_id: int, entry_id: int, reason: str, unclaimed_only: bool = False) -> bool:
        """``unclaimed_only`` refuses entries whose approval is currently sending."""
        return ReplyQueueRepository._finish(
            user_id, entry_id, unclaimed_only,
            status=QueueStatus.REJECTED.value,
            rejected_at=utc_now(),
            rejection_reason=reason,
        )

    @staticmethod
    def _finish(user_id: int, entry_id: int, unclaimed_only: bool, **values) -> bool:
        """Move a pending entry to a terminal state. False if it was no longer pending."""
        now = utc_now()
        conditions = [
            AutoReplyQueue.user_id == user_id,
            AutoReplyQueue.id == entry_id,
            AutoReplyQueue.status == QueueStatus.PENDING.value,
        ]
        if unclaimed_only:
            conditions.append(ReplyQueueRepository._unclaimed(now))
        with get_db_session() as session:
            try:
                result = session.execute(
                    update(AutoReplyQueue)
                    .where(*conditions)
                    .values(updated_at=now, **values)
                )
                session.commit()
                return result.rowcount == 1
            except Exception as e:
                logger.error(f"❌ Failed to update queue entry {entry_id}: {e}")
                session.rollback()
                raise

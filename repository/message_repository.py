from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError

from database.connection import get_db_session
from models.instagram_message import Channel, InstagramMessage
from models.timestamp_mixin import to_naive_utc, utc_now
from utils.logger import logger


class MessageRepository:
    """Repository for inbound Instagram DMs and comments."""

    @staticmethod
    def exists(user_id: int, message_id: str) -> bool:
        with get_db_session() as session:
            return session.query(InstagramMessage.id).filter_by(
                user_id=user_id, message_id=message_id
            ).first() is not None

    @staticmethod
    def get_by_message_id(user_id: int, message_id: str) -> Optional[InstagramMessage]:
        with get_db_session() as session:
            return session.query(InstagramMessage).filter_by(
                user_id=user_id, message_id=message_id
            ).first()

    @staticmethod
    def get_by_id(user_id: int, pk: int) -> Optional[InstagramMessage]:
        with get_db_session() as session:
            return session.query(InstagramMessage).filter_by(user_id=user_id, id=pk).first()

    @staticmethod
    def create_message(user_id: int, message_id: str, **fields) -> Optional[InstagramMessage]:
        """
        Insert a message. Returns None when (user_id, message_id) already exists;
        the unique constraint is the de-duplication guard, not a prior lookup.
        """
        if fields.get("timestamp") is not None:
            fields["timestamp"] = to_naive_utc(fields["timestamp"])
        with get_db_session() as session:
            try:
                message = InstagramMessage(user_id=user_id, message_id=message_id, **fields)
                session.add(message)
                session.commit()
                session.refresh(message)
                return message
            except IntegrityError:
                # Message already exists due to unique constraint
                session.rollback()
                logger.info(f"⏭️ Message '{message_id}' already stored for profile {user_id}")
                return None
            except Exception as e:
                logger.error(f"❌ Failed to store message '{message_id}': {e}")
                session.rollback()
                raise

    @staticmethod
    def save_analysis(user_id: int, message_id: str, analysis) -> None:
        with get_db_session() as session:
            try:
                session.execute(
                    update(InstagramMessage)
                    .where(InstagramMessage.user_id == user_id, InstagramMessage.message_id == message_id)
                    .values(
                        is_question=True,
                        intent=analysis.intent,
                        intent_confidence=analysis.confidence,
                        detected_language=analysis.detected_language,
                        ai_reply_suggestion_fi=analysis.suggested_reply_fi,
                        ai_reply_suggestion_en=analysis.suggested_reply_en,
                    )
                )
                session.commit()
            except Exception as e:
                logger.error(f"❌ Failed to save analysis for message '{message_id}': {e}")
                session.rollback()
                raise

    @staticmethod
    def mark_replied(user_id: int, message_id: str, reply_text: str, replied_by: str,
                     reply_id: Optional[str] = None) -> bool:
        with get_db_session() as session:
            try:
                result = session.execute(
                    update(InstagramMessage)
                    .where(InstagramMessage.user_id == user_id, InstagramMessage.message_id == message_id)
                    .values(
                        replied_at=utc_now(),
                        replied_by=replied_by,
                        reply_text=reply_text,
                        reply_id=reply_id,
                    )
                )
                session.commit()
                return result.rowcount > 0
            except Exception as e:
                logger.error(f"❌ Failed to mark message '{message_id}' as replied: {e}")
                session.rollback()
                raise

    @staticmethod
    def get_recent_conversation_messages(user_id: int, conversation_id: Optional[str], before: datetime,
                                         window_minutes: int, limit: int,
                                         sender_id: Optional[str] = None) -> List[InstagramMessage]:
        """
        Earlier messages of one thread inside the lookback window, oldest first.

        An Instagram DM thread has a single customer, so DMs from ``sender_id``
        belong to the thread too. Synced DMs carry the Graph thread id and
        webhook DMs do not; matching the sender joins both.
        """
        thread = []
        if conversation_id:
            thread.append(InstagramMessage.conversation_id == conversation_id)
        if sender_id:
            thread.append(and_(InstagramMessage.message_type == Channel.DM.value,
                               InstagramMessage.sender_id == sender_id))
        if not thread:
            return []

        before = to_naive_utc(before)
        since = before - timedelta(minutes=window_minutes)
        with get_db_session() as session:
            rows = (
                session.query(InstagramMessage)
                .filter(
                    InstagramMessage.user_id == user_id,
                    or_(*thread),
                    InstagramMessage.timestamp >= since,
                    InstagramMessage.timestamp < before,
                )
                .order_by(InstagramMessage.timestamp.desc())
                .limit(limit)
                .all()
            )
            return list(reversed(rows))

    @staticmethod
    def list_messages(user_id: int, message_type: Optional[str] = None,
                      include_archived: bool = False) -> List[InstagramMessage]:
        with get_db_session() as session:
            query = session.query(InstagramMessage).filter(InstagramMessage.user_id == user_id)
            if message_type:
                query = query.filter(InstagramMessage.message_type == message_type)
            if not include_archived:
                query = query.filter(InstagramMessage.archived_at.is_(None))
            return query.order_by(InstagramMessage.timestamp.desc()).all()

    @staticmethod
    def get_by_message_ids(user_id: int, message_ids: Sequence[str]) -> List[InstagramMessage]:
        if not message_ids:
            return []
        with get_db_session() as session:
            return session.query(InstagramMessage).filter(
                InstagramMessage.user_id == user_id,
                InstagramMessage.message_id.in_(list(message_ids)),
            ).all()

    @staticmethod
    def archive_messages(user_id: int, message_ids: Sequence[str]) -> int:
        """Hide messages from the inbox. Returns how many rows were archived."""
        with get_db_session() as session:
            try:
                result = session.execute(
                    update(InstagramMessage)
                    .where(
                        InstagramMessage.user_id == user_id,
                        InstagramMessage.message_id.in_(list(message_ids)),
                        InstagramMessage.archived_at.is_(None),
                    )
                    .values(archived_at=utc_now())
                )
                session.commit()
                logger.info(f"🗄️ Archived {result.rowcount} messages for profile {user_id}")
                return result.rowcount
            except Exception as e:
                logger.error(f"❌ Failed to archive messages for profile {user_id}: {e}")
                session.rollback()
                raise

    @staticmethod
    def set_reply_status(user_id: int, pk: int, replied: bool, reply_text: Optional[str] = None,
                         replied_by: Optional[str] = None) -> Optional[InstagramMessage]:
        """Mark a message answered (or unanswered again) by hand. None if it is not the caller's."""
        with get_db_session() as session:
            try:
                result = session.execute(
                    update(InstagramMessage)
                    .where(InstagramMessage.user_id == user_id, InstagramMessage.id == pk)
                    .values(
                        replied_at=utc_now() if replied else None,
                        replied_by=replied_by if replied else None,
                        reply_text=reply_text or None,
                        reply_id=None,
                        updated_at=utc_now(),
                    )
                )
                session.commit()
                if result.rowcount == 0:
                    return None
            except Exception as e:
                logger.error(f"❌ Failed to update reply status of message {pk}: {e}")
                session.rollback()
                raise
        return MessageRepository.get_by_id(user_id, pk)

    @staticmethod
    def archive_answered_before(user_id: int, cutoff: datetime) -> Dict[str, int]:
        """Archive messages answered before ``cutoff``. Returns counts per message type."""
        cutoff = to_naive_utc(cutoff)
        archived = {}
        with get_db_session() as session:
            try:
                for channel in Channel:
                    result = session.execute(
                        update(InstagramMessage)
                        .where(
                            InstagramMessage.user_id == user_id,
                            InstagramMessage.message_type == channel.value,
                            InstagramMessage.archived_at.is_(None),
                            InstagramMessage.replied_at.is_not(None),
                            InstagramMessage.replied_at < cutoff,
                        )
                        .values(archived_at=utc_now())
                    )
                    archived[channel.value] = result.rowcount
                session.commit()
            except Exception as e:
                logger.error(f"❌ Failed to archive answered messages for profile {user_id}: {e}")
                session.rollback()
                raise
        logger.info(f"🗄️ Archived answered messages for profile {user_id}: {archived}")
        return archived

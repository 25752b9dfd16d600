from typing import List, Optional

from sqlalchemy.orm import Session

from database.connection import SessionLocal
from models.auto_reply_log import AutoReplyLog
from utils.logger import logger


def create_reply_log(user_id: int, message_type: str, message_id: str, reply_text: str, reply_type: str,
                     success: bool, original_message_text: Optional[str] = None,
                     sender_username: Optional[str] = None, automation_rule_id: Optional[int] = None,
                     instagram_reply_id: Optional[str] = None, error_message: Optional[str] = None) -> AutoReplyLog:
    """Append one audit record for a reply send attempt."""
    session: Session = SessionLocal()
    try:
        log = AutoReplyLog(
            user_id=user_id,
            message_type=message_type,
            message_id=message_id,
            original_message_text=original_message_text,
            sender_username=sender_username,
            reply_text=reply_text,
            reply_type=reply_type,
            automation_rule_id=automation_rule_id,
            instagram_reply_id=instagram_reply_id,
            success=success,
            error_message=error_message,
        )
        session.add(log)
        session.commit()
        session.refresh(log)
        return log
    except Exception as e:
        logger.error(f"❌ DB error while writing reply log for message '{message_id}': {e}")
        session.rollback()
        raise
    finally:
        session.close()


def list_reply_logs(user_id: int, limit: int = 50, reply_type: Optional[str] = None) -> List[AutoReplyLog]:
    session: Session = SessionLocal()
    try:
        query = session.query(AutoReplyLog).filter(AutoReplyLog.user_id == user_id)
        if reply_type:
            query = query.filter(AutoReplyLog.reply_type == reply_type)
        return query.order_by(AutoReplyLog.sent_at.desc(), AutoReplyLog.id.desc()).limit(limit).all()
    finally:
        session.close()


def get_successful_reply(user_id: int, message_id: str, reply_type: Optional[str] = None) -> Optional[AutoReplyLog]:
    """The latest reply that actually went out for a message, if any."""
    session: Session = SessionLocal()
    try:
        query = session.query(AutoReplyLog).filter(
            AutoReplyLog.user_id == user_id,
            AutoReplyLog.message_id == message_id,
            AutoReplyLog.success.is_(True),
        )
        if reply_type:
            query = query.filter(AutoReplyLog.reply_type == reply_type)
        return query.order_by(AutoReplyLog.sent_at.desc(), AutoReplyLog.id.desc()).first()
    finally:
        session.close()

from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from database.connection import SessionLocal
from models.profile import Profile
from models.timestamp_mixin import utc_now
from utils.logger import logger


def create_profile(email: str, **fields) -> Profile:
    session: Session = SessionLocal()
    try:
        profile = Profile(email=email, **fields)
        session.add(profile)
        session.commit()
        session.refresh(profile)
        logger.info(f"✅ Created profile {profile.id} ({email})")
        return profile
    except Exception as e:
        logger.error(f"❌ DB error while creating profile {email}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def get_profile_by_id(user_id: int) -> Optional[Profile]:
    session: Session = SessionLocal()
    try:
        return session.get(Profile, user_id)
    finally:
        session.close()


def get_profile_by_page_id(page_id: str) -> Optional[Profile]:
    """Find the business whose Facebook page received a DM."""
    session: Session = SessionLocal()
    try:
        return session.query(Profile).filter_by(facebook_page_id=page_id).first()
    finally:
        session.close()


def get_profile_by_instagram_user_id(instagram_user_id: str) -> Optional[Profile]:
    session: Session = SessionLocal()
    try:
        return session.query(Profile).filter_by(instagram_user_id=instagram_user_id).first()
    finally:
        session.close()


def update_auto_reply_settings(user_id: int, dms_enabled: Optional[bool] = None,
                               comments_enabled: Optional[bool] = None) -> Optional[Profile]:
    session: Session = SessionLocal()
    try:
        profile = session.get(Profile, user_id)
        if profile is None:
            return None
        if dms_enabled is not None:
            profile.auto_reply_dms_enabled = dms_enabled
        if comments_enabled is not None:
            profile.auto_reply_comments_enabled = comments_enabled
        session.commit()
        session.refresh(profile)
        logger.info(f"Auto-reply settings for profile {user_id}: dms={profile.auto_reply_dms_enabled}, comments={profile.auto_reply_comments_enabled}")
        return profile
    except Exception as e:
        logger.error(f"❌ DB error while updating auto-reply settings for profile {user_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def touch_last_sync(user_id: int, channel: str) -> None:
    """Record when DMs or comments were last pulled from Instagram."""
    column = "last_comment_sync" if channel == "comment" else "last_instagram_sync"
    session: Session = SessionLocal()
    try:
        session.execute(update(Profile).where(Profile.id == user_id).values({column: utc_now()}))
        session.commit()
    except Exception as e:
        logger.error(f"❌ DB error while updating {column} for profile {user_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def reset_monthly_message_count(user_id: int, reset_date: date) -> None:
    session: Session = SessionLocal()
    try:
        session.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(monthly_message_count=0, last_message_reset=reset_date)
        )
        session.commit()
        logger.info(f"🔄 Monthly message count reset for profile {user_id}")
    except Exception as e:
        logger.error(f"❌ DB error while resetting usage for profile {user_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def increment_monthly_message_count(user_id: int) -> None:
    """Atomic +1 in SQL so concurrent syncs cannot lose an increment."""
    session: Session = SessionLocal()
    try:
        session.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(monthly_message_count=Profile.monthly_message_count + 1)
        )
        session.commit()
    except Exception as e:
        logger.error(f"❌ DB error while incrementing usage for profile {user_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()

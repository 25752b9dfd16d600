from datetime import date, datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from config import DEFAULT_PLAN, PLAN_MESSAGE_LIMITS
from models.timestamp_mixin import to_naive_utc, utc_now
from repository import profile_repository
from utils.logger import logger


class UsageStats(BaseModel):
    current_count: int
    limit: Optional[int]
    percentage: int
    reset_date: date
    is_over_limit: bool


class UsageCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    usage: Optional[UsageStats] = None


def calculate_usage_percentage(current_count: int, limit: Optional[int]) -> int:
    if limit is None:
        return 0
    if limit == 0:
        return 100
    return min(round(current_count / limit * 100), 100)


def get_plan_limit(tier: Optional[str]) -> Optional[int]:
    tier = tier if tier in PLAN_MESSAGE_LIMITS else DEFAULT_PLAN
    return PLAN_MESSAGE_LIMITS.get(tier)


def _next_reset_date(today: date) -> date:
    return today.replace(day=1) + relativedelta(months=1)


def get_user_usage_stats(user_id: int, today: Optional[date] = None) -> Optional[UsageStats]:
    """Usage for the current month; resets the counter first when the month changed."""
    profile = profile_repository.get_profile_by_id(user_id)
    if profile is None:
        logger.warning(f"⚠️ No profile {user_id} for usage stats")
        return None

    today = today or utc_now().date()
    current_count = profile.monthly_message_count or 0
    last_reset = profile.last_message_reset

    if last_reset is None or (last_reset.year, last_reset.month) != (today.year, today.month):
        profile_repository.reset_monthly_message_count(user_id, today)
        current_count = 0

    limit = get_plan_limit(profile.subscription_tier)
    return UsageStats(
        current_count=current_count,
        limit=limit,
        percentage=calculate_usage_percentage(current_count, limit),
        reset_date=_next_reset_date(today),
        is_over_limit=limit is not None and current_count >= limit,
    )


def can_analyze_message(user_id: int, now: Optional[datetime] = None) -> UsageCheck:
    usage = get_user_usage_stats(user_id)
    if usage is None:
        return UsageCheck(allowed=False, reason="Could not fetch usage statistics")

    if usage.is_over_limit:
        return UsageCheck(allowed=False, reason="Monthly message limit reached. Please upgrade your plan.", usage=usage)

    profile = profile_repository.get_profile_by_id(user_id)
    now = to_naive_utc(now) if now else utc_now()
    status = profile.subscription_status

    if profile.trial_ends_at and profile.trial_ends_at < now and status != "active":
        return UsageCheck(allowed=False, reason="Free trial expired. Please subscribe to continue.", usage=usage)

    if status == "past_due":
        return UsageCheck(allowed=False, reason="Payment failed. Please update your payment method.", usage=usage)

    if status == "canceled" and not profile.trial_ends_at:
        return UsageCheck(allowed=False, reason="Subscription canceled. Please resubscribe to continue.", usage=usage)

    return UsageCheck(allowed=True, usage=usage)


def increment_message_count(user_id: int) -> bool:
    try:
        profile_repository.increment_monthly_message_count(user_id)
        return True
    except Exception as e:
        logger.error(f"❌ Error incrementing message count for profile {user_id}: {e}")
        return False

"""Monthly quota accounting."""
from datetime import date, datetime, timedelta

import pytest

from repository import profile_repository
from services import usage_service
from services.usage_service import calculate_usage_percentage, get_plan_limit


class TestUsageMath:

    @pytest.mark.parametrize("count,limit,expected", [
        (0, 50, 0),
        (25, 50, 50),
        (1, 3, 33),
        (80, 50, 100),
        (10, None, 0),
        (0, 0, 100),
    ])
    def test_percentage(self, count, limit, expected):
        assert calculate_usage_percentage(count, limit) == expected

    def test_plan_limits(self):
        assert get_plan_limit("free") == 50
        assert get_plan_limit("premium") == 2000
        assert get_plan_limit("enterprise") is None
        assert get_plan_limit("unknown") == 50


class TestUsageStats:

    def test_same_month_keeps_count(self, make_profile):
        today = date(2025, 5, 20)
        profile = make_profile(monthly_message_count=12, last_message_reset=date(2025, 5, 1))

        stats = usage_service.get_user_usage_stats(profile.id, today=today)

        assert stats.current_count == 12
        assert stats.limit == 50
        assert stats.percentage == 24
        assert stats.reset_date == date(2025, 6, 1)
        assert stats.is_over_limit is False

    def test_new_month_resets_count(self, make_profile):
        profile = make_profile(monthly_message_count=49, last_message_reset=date(2025, 4, 3))

        stats = usage_service.get_user_usage_stats(profile.id, today=date(2025, 5, 2))

        assert stats.current_count == 0
        stored = profile_repository.get_profile_by_id(profile.id)
        assert stored.monthly_message_count == 0
        assert stored.last_message_reset == date(2025, 5, 2)

    def test_december_rolls_into_next_year(self, make_profile):
        profile = make_profile(last_message_reset=date(2025, 12, 1))
        stats = usage_service.get_user_usage_stats(profile.id, today=date(2025, 12, 31))
        assert stats.reset_date == date(2026, 1, 1)

    def test_unknown_profile(self):
        assert usage_service.get_user_usage_stats(999) is None


class TestCanAnalyzeMessage:

    def _this_month(self):
        return usage_service.utc_now().date().replace(day=1)

    def test_allowed_under_limit(self, make_profile):
        profile = make_profile(monthly_message_count=3, last_message_reset=self._this_month())
        check = usage_service.can_analyze_message(profile.id)
        assert check.allowed is True
        assert check.usage.current_count == 3

    def test_blocked_at_limit(self, make_profile):
        profile = make_profile(monthly_message_count=50, last_message_reset=self._this_month())

        check = usage_service.can_analyze_message(profile.id)

        assert check.allowed is False
        assert check.reason == "Monthly message limit reached. Please upgrade your plan."

    def test_unlimited_plan(self, make_profile):
        profile = make_profile(subscription_tier="enterprise", subscription_status="active",
                               monthly_message_count=100000, last_message_reset=self._this_month())
        assert usage_service.can_analyze_message(profile.id).allowed is True

    def test_expired_trial(self, make_profile):
        now = datetime(2025, 5, 10, 12, 0)
        profile = make_profile(trial_ends_at=now - timedelta(days=1), subscription_status="trialing")

        check = usage_service.can_analyze_message(profile.id, now=now)

        assert check.allowed is False
        assert check.reason == "Free trial expired. Please subscribe to continue."

    def test_past_due_and_canceled(self, make_profile):
        past_due = make_profile(subscription_status="past_due")
        canceled = make_profile(subscription_status="canceled")

        assert usage_service.can_analyze_message(past_due.id).reason == "Payment failed. Please update your payment method."
        assert usage_service.can_analyze_message(canceled.id).reason == "Subscription canceled. Please resubscribe to continue."

    def test_missing_profile(self):
        check = usage_service.can_analyze_message(404)
        assert check.allowed is False
        assert check.reason == "Could not fetch usage statistics"


class TestIncrement:

    def test_increments_atomically(self, make_profile):
        profile = make_profile(last_message_reset=date(2025, 5, 1))

        for _ in range(3):
            assert usage_service.increment_message_count(profile.id) is True

        assert profile_repository.get_profile_by_id(profile.id).monthly_message_count == 3

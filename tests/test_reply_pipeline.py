"""Per-message reply decisions and batch accounting."""
from datetime import datetime, timedelta

from models.auto_reply_queue import QueueStatus
from repository import profile_repository, reply_log_repository
from repository.automation_rule_repository import AutomationRuleRepository
from repository.business_rule_repository import create_business_rule
from repository.message_repository import MessageRepository
from repository.reply_queue_repository import ReplyQueueRepository
from services.instagram_service import InstagramAPIError
from services.reply_pipeline import ProcessOutcome, SyncResult
from services.usage_service import utc_now


def add_rule(user_id, trigger, reply, match_type="contains", trigger_type="both", is_active=True):
    return AutomationRuleRepository.create_rule(user_id, {
        "trigger_text": trigger,
        "reply_text": reply,
        "match_type": match_type,
        "trigger_type": trigger_type,
        "is_active": is_active,
    })


class TestEndToEndScenarios:

    def test_dm_automation_reply(self, pipeline, ai_service, dm_sender, make_profile, make_inbound):
        """A matching rule answers immediately without calling the classifier."""
        profile = make_profile(auto_reply_dms_enabled=True)
        rule = add_rule(profile.id, "price", "€10")

        result = pipeline.process_batch(profile, [make_inbound("m-1", "price")], "dm")

        assert result.auto_replied == 1
        dm_sender.assert_called_once()
        _, recipient, text = dm_sender.call_args[0]
        assert (recipient, text) == ("customer-1", "€10")
        assert ai_service.intent_calls == []

        logs = reply_log_repository.list_reply_logs(profile.id)
        assert len(logs) == 1
        assert logs[0].success is True
        assert logs[0].reply_type == "automation"
        assert logs[0].automation_rule_id == rule.id
        assert logs[0].instagram_reply_id == "dm-reply-1"

        assert AutomationRuleRepository.get_rule(profile.id, rule.id).usage_count == 1
        stored = MessageRepository.get_by_message_id(profile.id, "m-1")
        assert stored.replied_by == "automation"
        assert stored.reply_text == "€10"

    def test_emoji_comment_is_stored_without_reply(self, pipeline, ai_service, comment_sender,
                                                    make_profile, make_inbound):
        profile = make_profile(auto_reply_comments_enabled=True)

        result = pipeline.process_batch(profile, [make_inbound("c-1", "🔥🔥🔥", channel="comment")], "comment")

        assert result.synced == 1
        assert result.analyzed == 0
        stored = MessageRepository.get_by_message_id(profile.id, "c-1")
        assert stored.is_question is False
        assert stored.intent is None
        assert ReplyQueueRepository.list_by_status(profile.id) == []
        comment_sender.assert_not_called()
        assert ai_service.intent_calls == []

    def test_finnish_dm_is_queued_in_finnish(self, pipeline, dm_sender, make_profile, make_inbound):
        profile = make_profile(auto_reply_dms_enabled=True)

        result = pipeline.process_batch(profile, [make_inbound("m-1", "Mitä tämä maksaa?")], "dm")

        assert (result.analyzed, result.queued) == (1, 1)
        stored = MessageRepository.get_by_message_id(profile.id, "m-1")
        assert stored.intent == "price_inquiry"
        assert stored.detected_language == "fi"

        [entry] = ReplyQueueRepository.list_by_status(profile.id)
        assert entry.status == QueueStatus.PENDING.value
        assert entry.detected_language == "fi"
        assert entry.suggested_reply == stored.ai_reply_suggestion_fi
        dm_sender.assert_not_called()


class TestDispatchDecision:

    def test_duplicate_ingestion_stores_once(self, pipeline, ai_service, make_profile, make_inbound):
        profile = make_profile()
        batch = [make_inbound("m-1", "Is it available?")]

        first = pipeline.process_batch(profile, batch, "dm")
        second = pipeline.process_batch(profile, batch, "dm")

        assert (first.synced, second.synced, second.skipped) == (1, 0, 1)
        assert len(MessageRepository.list_messages(profile.id)) == 1
        assert len(ai_service.intent_calls) == 1
        assert profile_repository.get_profile_by_id(profile.id).monthly_message_count == 1

    def test_rule_ignored_when_auto_reply_off(self, pipeline, dm_sender, make_profile, make_inbound):
        profile = make_profile(auto_reply_dms_enabled=False)
        add_rule(profile.id, "price", "€10")

        result = pipeline.process_batch(profile, [make_inbound("m-1", "price")], "dm")

        assert (result.auto_replied, result.analyzed, result.queued) == (0, 1, 0)
        dm_sender.assert_not_called()
        assert ReplyQueueRepository.list_by_status(profile.id) == []

    def test_channel_filtered_rules(self, pipeline, comment_sender, make_profile, make_inbound):
        profile = make_profile(auto_reply_comments_enabled=True)
        add_rule(profile.id, "price", "DM only", trigger_type="dm")
        comment_rule = add_rule(profile.id, "price", "See DM", trigger_type="comment")

        pipeline.process_batch(profile, [make_inbound("c-1", "price?", channel="comment")], "comment")

        comment_sender.assert_called_once()
        _, comment_id, text = comment_sender.call_args[0]
        assert (comment_id, text) == ("c-1", "See DM")
        assert AutomationRuleRepository.get_rule(profile.id, comment_rule.id).usage_count == 1

    def test_failed_automation_send_falls_through(self, pipeline, ai_service, comment_sender,
                                                  make_profile, make_inbound):
        profile = make_profile(auto_reply_comments_enabled=True)
        rule = add_rule(profile.id, "price", "€10")
        comment_sender.side_effect = InstagramAPIError("(#10) Permission denied", status_code=403)

        result = pipeline.process_batch(profile, [make_inbound("c-1", "price?", channel="comment")], "comment")

        assert (result.auto_replied, result.queued) == (0, 1)
        [log] = reply_log_repository.list_reply_logs(profile.id)
        assert log.success is False
        assert log.error_message == "(#10) Permission denied"
        assert AutomationRuleRepository.get_rule(profile.id, rule.id).usage_count == 0
        assert len(ai_service.intent_calls) == 1
        assert MessageRepository.get_by_message_id(profile.id, "c-1").replied_at is None

    def test_automation_reply_is_not_resent_after_storage_failure(self, pipeline, dm_sender, make_profile,
                                                                   make_inbound, monkeypatch):
        profile = make_profile(auto_reply_dms_enabled=True)
        rule = add_rule(profile.id, "price", "€10")
        original = MessageRepository.create_message
        failures = {"left": 1}

        def create_fails_once(user_id, message_id, **fields):
            if failures["left"]:
                failures["left"] -= 1
                raise RuntimeError("database unavailable")
            return original(user_id, message_id, **fields)

        monkeypatch.setattr(MessageRepository, "create_message", staticmethod(create_fails_once))
        batch = [make_inbound("m-1", "price")]

        first = pipeline.process_batch(profile, batch, "dm")
        [log] = reply_log_repository.list_reply_logs(profile.id)
        assert (log.success, log.instagram_reply_id) == (True, "dm-reply-1")

        second = pipeline.process_batch(profile, batch, "dm")

        assert first.failed == 1
        assert second.auto_replied == 1
        assert dm_sender.call_count == 1
        assert len(reply_log_repository.list_reply_logs(profile.id)) == 1
        stored = MessageRepository.get_by_message_id(profile.id, "m-1")
        assert (stored.replied_by, stored.reply_text, stored.reply_id) == ("automation", "€10", "dm-reply-1")
        assert AutomationRuleRepository.get_rule(profile.id, rule.id).usage_count == 1
        assert profile_repository.get_profile_by_id(profile.id).monthly_message_count == 1

    def test_business_rules_reach_classifier(self, pipeline, ai_service, make_profile, make_inbound):
        profile = make_profile()
        create_business_rule(profile.id, {"rule_type": "price", "rule_key": "Haircut", "rule_value": "35 €"})
        create_business_rule(profile.id, {"rule_type": "faq", "rule_key": "Old", "rule_value": "x", "is_active": False})

        pipeline.process_batch(profile, [make_inbound("m-1", "How much is a haircut?")], "dm")

        rules = ai_service.intent_calls[0]["business_rules"]
        assert [r.rule_key for r in rules] == ["Haircut"]

    def test_greeting_then_question_uses_context(self, pipeline, ai_service, make_profile, make_inbound):
        profile = make_profile(auto_reply_dms_enabled=True)
        t0 = datetime(2025, 5, 1, 12, 0)

        pipeline.process_batch(profile, [
            make_inbound("m-1", "Hello", timestamp=t0),
            make_inbound("m-2", "how much is delivery?", timestamp=t0 + timedelta(minutes=1)),
        ], "dm")

        second_call = ai_service.intent_calls[1]
        assert [turn.message_text for turn in second_call["conversation_context"]] == ["Hello"]


class TestBatchAccounting:

    def test_usage_limit_stops_batch(self, pipeline, ai_service, make_profile, make_inbound):
        month_start = utc_now().date().replace(day=1)
        profile = make_profile(monthly_message_count=49, last_message_reset=month_start)

        result = pipeline.process_batch(profile, [
            make_inbound("m-1", "Where are you?"),
            make_inbound("m-2", "Is it in stock?"),
            make_inbound("m-3", "Price?"),
        ], "dm")

        assert result.upgrade_required is True
        assert result.synced == 1
        assert len(ai_service.intent_calls) == 1
        assert not MessageRepository.exists(profile.id, "m-2")
        assert profile_repository.get_profile_by_id(profile.id).monthly_message_count == 50

    def test_one_bad_message_does_not_abort_batch(self, pipeline, make_profile, make_inbound, monkeypatch):
        profile = make_profile()
        original = MessageRepository.create_message

        def flaky_create(user_id, message_id, **fields):
            if message_id == "m-1":
                raise RuntimeError("disk full")
            return original(user_id, message_id, **fields)

        monkeypatch.setattr(MessageRepository, "create_message", staticmethod(flaky_create))

        result = pipeline.process_batch(profile, [
            make_inbound("m-1", "Where are you?"),
            make_inbound("m-2", "Where are you?"),
        ], "dm")

        assert (result.failed, result.synced) == (1, 1)
        assert MessageRepository.exists(profile.id, "m-2")

    def test_automation_and_relevance_skips_count_usage(self, pipeline, make_profile, make_inbound):
        profile = make_profile(auto_reply_comments_enabled=True, last_message_reset=utc_now().date())
        add_rule(profile.id, "price", "€10")

        pipeline.process_batch(profile, [
            make_inbound("c-1", "price", channel="comment"),
            make_inbound("c-2", "😍", channel="comment"),
        ], "comment")

        assert profile_repository.get_profile_by_id(profile.id).monthly_message_count == 2

    def test_process_message_outcomes(self, pipeline, make_profile, make_inbound):
        profile = make_profile()
        inbound = make_inbound("m-1", "Love it!")

        assert pipeline.process_message(profile, inbound, [], []) == ProcessOutcome.ANALYZED
        assert pipeline.process_message(profile, inbound, [], []) == ProcessOutcome.SKIPPED_EXISTING


class TestSyncResult:

    def test_record(self):
        result = SyncResult()
        for outcome in (ProcessOutcome.SKIPPED_EXISTING, ProcessOutcome.AUTO_REPLIED, ProcessOutcome.NOT_RELEVANT,
                        ProcessOutcome.ANALYZED, ProcessOutcome.QUEUED):
            result.record(outcome)

        assert result.model_dump() == {
            "synced": 4, "skipped": 1, "analyzed": 2, "auto_replied": 1,
            "queued": 1, "failed": 0, "upgrade_required": False,
        }

"""
Per-message reply decision.

Every entry point (DM sync, comment sync, webhook) normalizes its payload to
``InboundMessage`` and hands it to ``ReplyPipeline``. The first satisfied
branch wins:

1. already stored -> skip
2. monthly quota exhausted -> stop (the batch halts and asks for an upgrade)
3. automation rule matches and channel auto-reply is on -> send rule reply now
4. comment judged not worth replying to -> store without analysis
5. classify, store, and queue the drafted reply when auto-reply is on

A failed automation send is logged and falls through to 4/5. A rule reply
that went out but whose message was never stored is recorded on redelivery
without sending it again.
"""
import enum
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from models.auto_reply_log import ReplyType
from models.instagram_message import Channel, RepliedBy
from models.profile import Profile
from models.timestamp_mixin import utc_now
from repository import reply_log_repository
from repository.automation_rule_repository import AutomationRuleRepository
from repository.business_rule_repository import list_business_rules
from repository.message_repository import MessageRepository
from repository.reply_queue_repository import ReplyQueueRepository
from services import instagram_service, usage_service
from services.automation_matcher import find_matching_automation_rule
from services.message_analyzer import MessageAnalyzer
from utils.logger import logger

ReplySender = Callable[[Profile, str, str], str]


class InboundMessage(BaseModel):
    """A DM or comment normalized from the Graph API or a webhook event."""
    message_id: str
    channel: str
    sender_id: str
    sender_username: Optional[str] = None
    sender_name: Optional[str] = None
    text: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    conversation_id: Optional[str] = None
    post_id: Optional[str] = None


class ProcessOutcome(str, enum.Enum):
    SKIPPED_EXISTING = "skipped_existing"
    USAGE_LIMITED = "usage_limited"
    AUTO_REPLIED = "auto_replied"
    NOT_RELEVANT = "not_relevant"
    QUEUED = "queued"
    ANALYZED = "analyzed"


class SyncResult(BaseModel):
    synced: int = 0
    skipped: int = 0
    analyzed: int = 0
    auto_replied: int = 0
    queued: int = 0
    failed: int = 0
    upgrade_required: bool = False

    def record(self, outcome: ProcessOutcome):
        if outcome == ProcessOutcome.SKIPPED_EXISTING:
            self.skipped += 1
            return
        self.synced += 1
        if outcome == ProcessOutcome.AUTO_REPLIED:
            self.auto_replied += 1
        elif outcome in (ProcessOutcome.ANALYZED, ProcessOutcome.QUEUED):
            self.analyzed += 1
            if outcome == ProcessOutcome.QUEUED:
                self.queued += 1


class ReplyPipeline:

    def __init__(self, analyzer: MessageAnalyzer,
                 dm_sender: ReplySender = instagram_service.send_dm_reply,
                 comment_sender: ReplySender = instagram_service.send_comment_reply):
        self.analyzer = analyzer
        self.dm_sender = dm_sender
        self.comment_sender = comment_sender

    def _send(self, profile: Profile, inbound: InboundMessage, text: str) -> str:
        if inbound.channel == Channel.COMMENT.value:
            return self.comment_sender(profile, inbound.message_id, text)
        return self.dm_sender(profile, inbound.sender_id, text)

    def _store(self, profile: Profile, inbound: InboundMessage, **fields):
        return MessageRepository.create_message(
            profile.id,
            inbound.message_id,
            message_type=inbound.channel,
            conversation_id=inbound.conversation_id,
            post_id=inbound.post_id,
            sender_id=inbound.sender_id,
            sender_username=inbound.sender_username,
            sender_name=inbound.sender_name,
            message_text=inbound.text,
            timestamp=inbound.timestamp,
            **fields,
        )

    def process_message(self, profile: Profile, inbound: InboundMessage,
                        automation_rules: Sequence, business_rules: Sequence) -> ProcessOutcome:
        if MessageRepository.exists(profile.id, inbound.message_id):
            logger.info(f"⏭️ Message already processed: {inbound.message_id}")
            return ProcessOutcome.SKIPPED_EXISTING

        sent = reply_log_repository.get_successful_reply(profile.id, inbound.message_id, ReplyType.AUTOMATION.value)
        if sent is not None:
            logger.info(f"⏭️ Automation reply already sent for {inbound.message_id}, recording it without resending")
            outcome = self._store_automation_reply(profile, inbound, sent.reply_text, sent.instagram_reply_id)
            if outcome == ProcessOutcome.AUTO_REPLIED:
                usage_service.increment_message_count(profile.id)
            return outcome

        usage_check = usage_service.can_analyze_message(profile.id)
        if not usage_check.allowed:
            logger.warning(f"⚠️ Usage limit reached for profile {profile.id}: {usage_check.reason}")
            return ProcessOutcome.USAGE_LIMITED

        outcome = self._dispatch(profile, inbound, automation_rules, business_rules)
        if outcome != ProcessOutcome.SKIPPED_EXISTING:
            usage_service.increment_message_count(profile.id)
        return outcome

    def _dispatch(self, profile: Profile, inbound: InboundMessage,
                  automation_rules: Sequence, business_rules: Sequence) -> ProcessOutcome:
        channel = inbound.channel
        auto_reply_enabled = profile.auto_reply_enabled_for(channel)

        rule = find_matching_automation_rule(inbound.text, channel, automation_rules)
        if rule is not None and auto_reply_enabled:
            outcome = self._send_automation_reply(profile, inbound, rule)
            if outcome is not None:
                return outcome

        if channel == Channel.COMMENT.value:
            relevance = self.analyzer.ai_service.should_reply_to_comment(inbound.text)
            if not relevance.should_reply:
                logger.info(f"⏭️ Comment needs no reply ({relevance.reason}): {inbound.message_id}")
                stored = self._store(profile, inbound, is_question=False)
                return ProcessOutcome.NOT_RELEVANT if stored else ProcessOutcome.SKIPPED_EXISTING
            analysis = self.analyzer.analyze(inbound.text, business_rules, channel=channel)
        else:
            analysis = self.analyzer.analyze_with_context(
                inbound.text, profile.id, inbound.conversation_id, inbound.timestamp, business_rules, inbound.sender_id
            )

        stored = self._store(
            profile, inbound,
            is_question=True,
            intent=analysis.intent,
            intent_confidence=analysis.confidence,
            detected_language=analysis.detected_language,
            ai_reply_suggestion_fi=analysis.suggested_reply_fi,
            ai_reply_suggestion_en=analysis.suggested_reply_en,
        )
        if stored is None:
            return ProcessOutcome.SKIPPED_EXISTING

        if not auto_reply_enabled:
            return ProcessOutcome.ANALYZED

        ReplyQueueRepository.enqueue(
            profile.id,
            inbound.message_id,
            message_type=channel,
            conversation_id=inbound.conversation_id,
            sender_id=inbound.sender_id,
            sender_username=inbound.sender_username,
            message_text=inbound.text,
            suggested_reply=analysis.reply_for_language(),
            detected_language=analysis.detected_language,
        )
        logger.info(f"📝 Queued AI reply for approval: '{inbound.text}'")
        return ProcessOutcome.QUEUED

    def _send_automation_reply(self, profile: Profile, inbound: InboundMessage, rule) -> Optional[ProcessOutcome]:
        """
        Send the rule's reply. Returns None when sending failed so classification can run.

        Once the reply is out, the success log is written before the message is
        stored; if storing then fails, the log lets a redelivery record the
        reply without sending it again.
        """
        try:
            reply_id = self._send(profile, inbound, rule.reply_text)
        except Exception as e:
            logger.error(f"❌ Automation reply failed for {inbound.message_id}: {e}")
            reply_log_repository.create_reply_log(
                profile.id, inbound.channel, inbound.message_id, rule.reply_text, ReplyType.AUTOMATION.value,
                success=False,
                original_message_text=inbound.text,
                sender_username=inbound.sender_username,
                automation_rule_id=rule.id,
                error_message=str(e),
            )
            return None

        try:
            reply_log_repository.create_reply_log(
                profile.id, inbound.channel, inbound.message_id, rule.reply_text, ReplyType.AUTOMATION.value,
                success=True,
                original_message_text=inbound.text,
                sender_username=inbound.sender_username,
                automation_rule_id=rule.id,
                instagram_reply_id=reply_id,
            )
            AutomationRuleRepository.record_usage(rule.id)
        except Exception as e:
            # The stored message below still marks the reply as sent
            logger.error(f"❌ Could not record sent automation reply for {inbound.message_id}: {e}")

        logger.info(f"✅ Instant automation reply sent: '{rule.reply_text}'")
        return self._store_automation_reply(profile, inbound, rule.reply_text, reply_id)

    def _store_automation_reply(self, profile: Profile, inbound: InboundMessage, reply_text: str,
                                reply_id: Optional[str]) -> ProcessOutcome:
        stored = self._store(
            profile, inbound,
            is_question=False,
            replied_at=utc_now(),
            replied_by=RepliedBy.AUTOMATION.value,
            reply_text=reply_text,
            reply_id=reply_id,
        )
        return ProcessOutcome.AUTO_REPLIED if stored else ProcessOutcome.SKIPPED_EXISTING

    def process_batch(self, profile: Profile, inbound_messages: List[InboundMessage], channel: str) -> SyncResult:
        """
        Run messages through the pipeline in the order given. Rule loading
        failures propagate; a failure on one message is counted and skipped.
        """
        automation_rules = [
            r for r in AutomationRuleRepository.list_rules(profile.id, active_only=True)
            if r.trigger_type in (channel, "both")
        ]
        business_rules = list_business_rules(profile.id, active_only=True)

        result = SyncResult()
        for inbound in inbound_messages:
            try:
                outcome = self.process_message(profile, inbound, automation_rules, business_rules)
            except Exception as e:
                logger.error(f"❌ Error processing {channel} {inbound.message_id}: {e}")
                result.failed += 1
                continue

            if outcome == ProcessOutcome.USAGE_LIMITED:
                result.upgrade_required = True
                break
            result.record(outcome)

        logger.info(
            f"✅ {channel} batch for profile {profile.id}: synced={result.synced} skipped={result.skipped} "
            f"analyzed={result.analyzed} auto_replied={result.auto_replied} queued={result.queued} failed={result.failed}"
        )
        return result

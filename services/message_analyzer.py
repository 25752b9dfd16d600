from datetime import datetime
from typing import Optional, Sequence, Tuple

from config import CONTEXT_MAX_MESSAGES, CONTEXT_WINDOW_MINUTES
from models.instagram_message import Channel, InstagramMessage
from repository.message_repository import MessageRepository
from services.ai_service_interface import (
    AIServiceInterface,
    IntentAnalysisResult,
    fallback_analysis,
    turns_from_messages,
)
from services.prompt_manager import prompt_manager
from utils.logger import logger


class MessageAnalyzer:
    """
    Intent classification on top of an injected AI provider.

    ``analyze`` is context-free (comments); ``analyze_with_context`` adds the
    earlier turns of a DM thread so a greeting followed by a question is
    classified by the question. Both return the fallback result instead of
    raising.
    """

    def __init__(self, ai_service: AIServiceInterface):
        self.ai_service = ai_service

    def analyze(self, message_text: str, business_rules: Optional[Sequence] = None,
                channel: str = Channel.COMMENT.value) -> IntentAnalysisResult:
        try:
            return self.ai_service.analyze_message_intent(message_text, business_rules=business_rules, channel=channel)
        except Exception as e:
            logger.error(f"❌ Intent analysis failed: {e}")
            return fallback_analysis()

    def analyze_with_context(self, message_text: str, user_id: int, conversation_id: Optional[str],
                             timestamp: datetime, business_rules: Optional[Sequence] = None,
                             sender_id: Optional[str] = None) -> IntentAnalysisResult:
        try:
            earlier = MessageRepository.get_recent_conversation_messages(
                user_id, conversation_id, timestamp, CONTEXT_WINDOW_MINUTES, CONTEXT_MAX_MESSAGES, sender_id
            )
            context = turns_from_messages(earlier)
            if context:
                logger.info(f"🧵 Classifying with {len(context)} earlier messages from conversation {conversation_id or sender_id}")
            return self.ai_service.analyze_message_intent(
                message_text,
                business_rules=business_rules,
                conversation_context=context,
                channel=Channel.DM.value,
            )
        except Exception as e:
            logger.error(f"❌ Context-aware intent analysis failed: {e}")
            return fallback_analysis()

    def get_or_compute_analysis(self, message: InstagramMessage,
                                business_rules: Optional[Sequence] = None) -> Tuple[IntentAnalysisResult, bool]:
        """
        Return (analysis, cached). A stored analysis with intent and both reply
        drafts is returned without calling the provider; otherwise the analysis
        is computed once and saved on the message.
        """
        if message.has_cached_analysis:
            return IntentAnalysisResult(
                intent=message.intent,
                confidence=message.intent_confidence if message.intent_confidence is not None else 0.5,
                detected_language=message.detected_language or "en",
                suggested_reply_fi=message.ai_reply_suggestion_fi,
                suggested_reply_en=message.ai_reply_suggestion_en,
            ), True

        if message.message_type == Channel.DM.value:
            analysis = self.analyze_with_context(
                message.message_text or "", message.user_id, message.conversation_id,
                message.timestamp, business_rules, message.sender_id,
            )
        else:
            analysis = self.analyze(message.message_text or "", business_rules)

        MessageRepository.save_analysis(message.user_id, message.message_id, analysis)
        return analysis, False

    def draft_custom_reply(self, message: InstagramMessage, context: str = "", language: Optional[str] = None,
                           business_rules: Optional[Sequence] = None) -> str:
        """A fresh reply draft for a stored message, in its detected language unless one is given."""
        facts = prompt_manager.format_business_rules(business_rules).strip()
        business_context = "\n".join(part for part in (context.strip(), facts) if part) or "None provided"
        return self.ai_service.generate_custom_reply(
            message.message_text or "",
            business_context,
            language or message.detected_language or "en",
        )

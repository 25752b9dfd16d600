from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import json
import re

from pydantic import BaseModel, ConfigDict, Field

from models.instagram_message import MessageIntent
from services.prompt_manager import (
    INTENT_SYSTEM_PROMPT,
    RELEVANCE_SYSTEM_PROMPT,
    prompt_manager,
)
from utils.logger import logger

VALID_INTENTS = {intent.value for intent in MessageIntent}

FALLBACK_REPLY_FI = "Kiitos viestistäsi! Palaamme asiaan pian."
FALLBACK_REPLY_EN = "Thank you for your message! We will get back to you soon."


class IntentAnalysisResult(BaseModel):
    """Classification of one inbound message with bilingual reply drafts."""
    model_config = ConfigDict(populate_by_name=True)

    intent: str = Field(description="One of the seven MessageIntent values")
    confidence: float = Field(ge=0.0, le=1.0)
    detected_language: str = Field(alias="detectedLanguage", description="'fi' or 'en'")
    suggested_reply_fi: str = Field(alias="suggestedReplyFi")
    suggested_reply_en: str = Field(alias="suggestedReplyEn")

    def reply_for_language(self, language: Optional[str] = None) -> str:
        language = language or self.detected_language
        return self.suggested_reply_fi if language == "fi" else self.suggested_reply_en


class CommentRelevance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    should_reply: bool = Field(alias="shouldReply")
    reason: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ConversationTurn(BaseModel):
    """An earlier message of the same DM thread, passed to the classifier as context."""
    sender_name: Optional[str] = None
    message_text: str
    timestamp: Optional[datetime] = None


def fallback_analysis() -> IntentAnalysisResult:
    return IntentAnalysisResult(
        intent=MessageIntent.OTHER.value,
        confidence=0.5,
        detected_language="en",
        suggested_reply_fi=FALLBACK_REPLY_FI,
        suggested_reply_en=FALLBACK_REPLY_EN,
    )


def fallback_relevance(reason: str = "Fallback: relevance check failed, replying to be safe") -> CommentRelevance:
    return CommentRelevance(should_reply=True, reason=reason, confidence=0.5)


class AIServiceInterface(ABC):
    """
    Abstract base class for AI providers.

    Backends implement only ``_complete``. Prompt building, JSON extraction and
    the failure policy live here so every provider behaves the same way when
    the model misbehaves: errors are logged and a fixed fallback is returned.
    """

    provider_name = "base"

    def __init__(self, api_key: str, model: str):
        """
        Initialize the AI service.

        Args:
            api_key: API key for the AI service
            model: Model name to use
        """
        self.api_key = api_key
        self.model = model
        self.temperature = 0.7
        self.max_tokens = 500

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        """Send one chat completion and return the raw text of the first choice."""
        pass

    def analyze_message_intent(
        self,
        message_text: str,
        business_rules: Optional[Sequence] = None,
        conversation_context: Optional[Sequence[ConversationTurn]] = None,
        channel: str = "dm",
    ) -> IntentAnalysisResult:
        """Classify a message and draft replies. Never raises."""
        try:
            prompt = prompt_manager.generate_intent_prompt(
                message_text,
                business_rules=business_rules,
                conversation_context=conversation_context,
                channel=channel,
            )
            response_text = self._complete(INTENT_SYSTEM_PROMPT, prompt, self.max_tokens, self.temperature)
            data = self._parse_json_response(response_text)
            if data is None:
                logger.warning(f"⚠️ No JSON in {self.provider_name} intent response, using fallback")
                return fallback_analysis()
            return self._build_analysis(data)
        except Exception as e:
            logger.error(f"❌ {self.provider_name} intent analysis failed: {e}")
            return fallback_analysis()

    def should_reply_to_comment(self, comment_text: str) -> CommentRelevance:
        """Decide whether a comment needs an answer. Never raises; defaults to replying."""
        try:
            prompt = prompt_manager.generate_relevance_prompt(comment_text)
            response_text = self._complete(RELEVANCE_SYSTEM_PROMPT, prompt, 150, 0.3)
            data = self._parse_json_response(response_text)
            if data is None or "shouldReply" not in data:
                logger.warning(f"⚠️ Unparseable {self.provider_name} relevance response, replying by default")
                return fallback_relevance("Fallback: could not parse relevance response")
            return CommentRelevance(
                should_reply=bool(data.get("shouldReply")),
                reason=str(data.get("reason") or ""),
                confidence=self._clamp_confidence(data.get("confidence"), default=0.5),
            )
        except Exception as e:
            logger.error(f"❌ {self.provider_name} relevance check failed: {e}")
            return fallback_relevance()

    def generate_custom_reply(self, message_text: str, context: str, language: str) -> str:
        try:
            prompt = prompt_manager.generate_custom_reply_prompt(message_text, context, language)
            reply = self._complete(INTENT_SYSTEM_PROMPT, prompt, 200, self.temperature)
            if reply and reply.strip():
                return reply.strip()
        except Exception as e:
            logger.error(f"❌ {self.provider_name} custom reply failed: {e}")
        return FALLBACK_REPLY_FI if language == "fi" else FALLBACK_REPLY_EN

    def _parse_json_response(self, response_text: Optional[str]) -> Optional[Dict[str, Any]]:
        """Extract the first {...} object from free text. Returns None when there is none."""
        if not response_text:
            return None
        json_match = re.search(r'\{.*\}', response_text, re.DOTALL)
        if not json_match:
            return None
        try:
            data = json.loads(json_match.group())
        except json.JSONDecodeError as e:
            logger.warning(f"JSON parsing error: {e}. Raw response: {response_text[:200]}")
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _clamp_confidence(value: Any, default: float) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return default
        return max(0.0, min(1.0, confidence))

    def _build_analysis(self, data: Dict[str, Any]) -> IntentAnalysisResult:
        intent = str(data.get("intent") or "").strip().lower()
        if intent not in VALID_INTENTS:
            intent = MessageIntent.OTHER.value

        language = str(data.get("detectedLanguage") or "").strip().lower()
        if language != "fi":
            language = "en"

        return IntentAnalysisResult(
            intent=intent,
            confidence=self._clamp_confidence(data.get("confidence"), default=0.5),
            detected_language=language,
            suggested_reply_fi=str(data.get("suggestedReplyFi") or FALLBACK_REPLY_FI),
            suggested_reply_en=str(data.get("suggestedReplyEn") or FALLBACK_REPLY_EN),
        )


def turns_from_messages(messages: List[Any]) -> List[ConversationTurn]:
    return [
        ConversationTurn(
            sender_name=m.sender_name or m.sender_username,
            message_text=m.message_text or "",
            timestamp=m.timestamp,
        )
        for m in messages
    ]

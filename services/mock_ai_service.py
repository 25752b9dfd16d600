import re
from typing import Optional, Sequence

from models.instagram_message import MessageIntent
from .ai_service_interface import (
    AIServiceInterface,
    CommentRelevance,
    ConversationTurn,
    FALLBACK_REPLY_EN,
    FALLBACK_REPLY_FI,
    IntentAnalysisResult,
)
from utils.logger import logger

FINNISH_KEYWORDS = ['hinta', 'maksa', 'saatavilla', 'varastossa', 'sijainti', 'osoite', 'missä', 'ongelma', 'valitus', 'kiitos', 'mahtava']

# Checked in order; the first group with a keyword hit decides the intent
INTENT_KEYWORDS = [
    (MessageIntent.PRICE_INQUIRY, ['price', 'cost', 'hinta', 'maksa']),
    (MessageIntent.AVAILABILITY, ['available', 'stock', 'saatavilla', 'varastossa']),
    (MessageIntent.LOCATION, ['location', 'address', 'where', 'sijainti', 'osoite', 'missä']),
    (MessageIntent.COMPLAINT, ['problem', 'issue', 'complaint', 'ongelma', 'valitus']),
    (MessageIntent.COMPLIMENT, ['great', 'love', 'amazing', 'kiitos', 'mahtava']),
    (MessageIntent.GENERAL_QUESTION, ['?', 'how', 'what', 'when']),
]

CANNED_REPLIES = {
    MessageIntent.PRICE_INQUIRY: (
        "Kiitos kysymyksestäsi! Hintamme vaihtelevat tuotteen mukaan. Voinko auttaa sinua tietyn tuotteen hinnan kanssa?",
        "Thank you for your inquiry! Our prices vary by product. Can I help you with pricing for a specific item?",
    ),
    MessageIntent.AVAILABILITY: (
        "Kiitos kysymyksestäsi! Tuotteemme ovat yleensä saatavilla. Mistä tuotteesta olet kiinnostunut?",
        "Thank you for asking! Our products are generally available. Which product are you interested in?",
    ),
    MessageIntent.LOCATION: (
        "Kiitos kysymyksestäsi! Löydät meidät Helsingistä. Voinko lähettää sinulle tarkan osoitteen?",
        "Thank you for asking! We are located in Helsinki. Would you like me to send you our exact address?",
    ),
    MessageIntent.COMPLAINT: (
        "Pahoittelut kuullessani tästä! Haluamme korjata tilanteen mahdollisimman pian. Voisitko kertoa lisää?",
        "I apologize for the inconvenience! We want to resolve this as quickly as possible. Could you tell me more?",
    ),
    MessageIntent.COMPLIMENT: (
        "Kiitos paljon! Olemme iloisia, että olet tyytyväinen. Palautteesi merkitsee meille paljon!",
        "Thank you so much! We are glad you are happy. Your feedback means a lot to us!",
    ),
    MessageIntent.GENERAL_QUESTION: (
        "Kiitos kysymyksestäsi! Autamme mielellämme. Voisitko kertoa tarkemmin, mistä haluat tietää?",
        "Thank you for your question! We are happy to help. Could you provide more details about what you would like to know?",
    ),
}

NO_REPLY_COMMENTS = {
    'nice', 'love it', 'wow', 'cool', 'great', 'amazing', 'beautiful', 'ok', 'okay',
    'thanks', 'thank you', 'kiitos', 'upeaa', 'ihana', 'mahtava', 'hieno', 'kiva',
}


class MockAIService(AIServiceInterface):
    """Deterministic keyword classifier for development and tests; needs no API key."""

    provider_name = "mock"

    def __init__(self, api_key: str = "", model: str = "keyword-mock"):
        super().__init__(api_key, model or "keyword-mock")

    def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        return "OK"

    def analyze_message_intent(
        self,
        message_text: str,
        business_rules: Optional[Sequence] = None,
        conversation_context: Optional[Sequence[ConversationTurn]] = None,
        channel: str = "dm",
    ) -> IntentAnalysisResult:
        logger.info("🤖 Using MOCK AI analyzer (no API key needed)")
        lower_text = (message_text or "").lower()

        detected_language = "fi" if any(k in lower_text for k in FINNISH_KEYWORDS) else "en"
        intent = MessageIntent.OTHER
        for candidate, keywords in INTENT_KEYWORDS:
            if any(k in lower_text for k in keywords):
                intent = candidate
                break

        reply_fi, reply_en = CANNED_REPLIES.get(intent, (FALLBACK_REPLY_FI, FALLBACK_REPLY_EN))
        return IntentAnalysisResult(
            intent=intent.value,
            confidence=0.75,
            detected_language=detected_language,
            suggested_reply_fi=reply_fi,
            suggested_reply_en=reply_en,
        )

    def should_reply_to_comment(self, comment_text: str) -> CommentRelevance:
        text = (comment_text or "").strip().lower()
        if not re.search(r'\w', text):
            return CommentRelevance(should_reply=False, reason="Emoji-only comment", confidence=0.9)
        if '?' in text:
            return CommentRelevance(should_reply=True, reason="Contains a question", confidence=0.8)
        if text.strip('!. ') in NO_REPLY_COMMENTS:
            return CommentRelevance(should_reply=False, reason="Generic praise or acknowledgement", confidence=0.8)
        return CommentRelevance(should_reply=True, reason="Substantive comment", confidence=0.6)

    def generate_custom_reply(self, message_text: str, context: str, language: str) -> str:
        if language == "fi":
            return "Kiitos viestistäsi! Olemme täällä auttamassa sinua. Palaamme asiaan pian yksityiskohtaisemman vastauksen kanssa."
        return "Thank you for your message! We are here to help you. We will get back to you soon with a more detailed response."

import os
from typing import Dict, List, Optional, Sequence
from utils.logger import get_logger
from config import PROMPTS_DIR

logger = get_logger(__name__)

RULE_CATEGORY_TITLES = {
    "price": "PRICES",
    "business_info": "BUSINESS INFORMATION",
    "inventory": "INVENTORY",
    "faq": "FAQ",
    "other": "OTHER",
}

INTENT_SYSTEM_PROMPT = (
    "You are a customer service assistant for a small business on Instagram. "
    "You classify customer messages and draft short, professional replies in Finnish and English."
)

INTENT_PROMPT = """Analyze this Instagram {channel_label} and determine the customer's intent. Then draft reply suggestions in both Finnish and English.
{business_context}{conversation_context}
Message: "{message}"

Rules:
- Detect the language of the message itself: "fi" for Finnish, "en" for English (default "en").
- If earlier messages are given, classify by the customer's actual question, not by a greeting.
- Classify the intent as exactly one of:
  - price_inquiry: asking about prices or costs
  - availability: asking if a product/service is available
  - location: asking about the business location or address
  - general_question: general information request
  - complaint: complaint or issue
  - compliment: positive feedback or compliment
  - other: anything else
- Use the business information above for exact figures. Never invent prices or facts.
- Keep replies short. Answer only what was asked.
- Do not add upsells, offers or follow-up questions the customer did not ask for.

Respond ONLY with JSON:
{{
  "intent": "intent_type",
  "confidence": 0.95,
  "detectedLanguage": "fi",
  "suggestedReplyFi": "Finnish reply",
  "suggestedReplyEn": "English reply"
}}"""

RELEVANCE_SYSTEM_PROMPT = "You decide whether an Instagram comment on a business post needs a reply."

RELEVANCE_PROMPT = """Comment: "{comment}"

Return {{"shouldReply": false}} when the comment is:
- only emojis (e.g. "🔥🔥", "😍")
- generic praise ("Nice!", "Love it", "Upeaa!")
- an acknowledgement ("ok", "thanks", "kiitos")
- tagging a friend without a question

Return {{"shouldReply": true}} when the comment is:
- a question or inquiry (price, availability, location, opening hours...)
- a complaint or problem report
- a request that needs an answer from the business

Respond ONLY with JSON:
{{
  "shouldReply": true,
  "reason": "short reason",
  "confidence": 0.9
}}"""

CUSTOM_REPLY_PROMPT = """Generate a professional {language_name} reply to this Instagram message.

Customer message: "{message}"
Business context: {context}

Requirements:
- Be friendly and professional
- Address the customer's question/concern
- Use proper {language_name} language
- Keep it concise (2-3 sentences)
- Use appropriate tone for social media

Reply:"""


class PromptManager:
    """Builds AI prompts; templates may be overridden by .txt files in a directory."""

    _DEFAULTS = {
        "intent": INTENT_PROMPT,
        "relevance": RELEVANCE_PROMPT,
        "custom_reply": CUSTOM_REPLY_PROMPT,
    }

    def __init__(self, config_dir: str = PROMPTS_DIR):
        """
        Initialize the prompt manager.

        Args:
            config_dir: Directory that may contain intent.txt, relevance.txt or custom_reply.txt
        """
        self.config_dir = config_dir
        self._template_cache: Dict[str, str] = {}

    def get_template(self, name: str) -> str:
        if name not in self._template_cache:
            self._template_cache[name] = self._load_template(name)
        return self._template_cache[name]

    def _load_template(self, name: str) -> str:
        filepath = os.path.join(self.config_dir, f"{name}.txt")
        if not os.path.isfile(filepath):
            return self._DEFAULTS[name]
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                template = f.read()
                logger.info(f"Loaded '{name}' prompt template from {filepath}")
                return template
        except OSError as e:
            logger.error(f"Error loading '{name}' prompt from {filepath}: {e}. Using built-in template.")
            return self._DEFAULTS[name]

    def clear_cache(self):
        self._template_cache.clear()
        logger.info("Cleared prompt template cache")

    @staticmethod
    def format_business_rules(business_rules: Optional[Sequence]) -> str:
        """Group active business facts by category as 'key: value' lines."""
        if not business_rules:
            return ""

        grouped: Dict[str, List[str]] = {}
        for rule in business_rules:
            if not getattr(rule, "is_active", True):
                continue
            category = rule.rule_type if rule.rule_type in RULE_CATEGORY_TITLES else "other"
            grouped.setdefault(category, []).append(f"- {rule.rule_key}: {rule.rule_value}")

        sections = []
        for category, title in RULE_CATEGORY_TITLES.items():
            if category in grouped:
                sections.append(f"{title}:\n" + "\n".join(grouped[category]))
        if not sections:
            return ""
        return "\nBUSINESS INFORMATION (use these exact facts):\n" + "\n\n".join(sections) + "\n"

    @staticmethod
    def format_conversation_context(conversation_context: Optional[Sequence]) -> str:
        if not conversation_context:
            return ""
        lines = [f"- {turn.sender_name or 'Customer'}: {turn.message_text}" for turn in conversation_context]
        return "\nEARLIER MESSAGES IN THIS CONVERSATION (oldest first):\n" + "\n".join(lines) + "\n"

    def generate_intent_prompt(self, message: str, business_rules: Optional[Sequence] = None,
                               conversation_context: Optional[Sequence] = None, channel: str = "dm") -> str:
        return self.get_template("intent").format(
            channel_label="comment" if channel == "comment" else "direct message",
            business_context=self.format_business_rules(business_rules),
            conversation_context=self.format_conversation_context(conversation_context),
            message=message,
        )

    def generate_relevance_prompt(self, comment: str) -> str:
        return self.get_template("relevance").format(comment=comment)

    def generate_custom_reply_prompt(self, message: str, context: str, language: str) -> str:
        language_name = "Finnish" if language == "fi" else "English"
        return self.get_template("custom_reply").format(
            language_name=language_name, message=message, context=context
        )


# Global instance for easy access
prompt_manager = PromptManager()

from groq import Groq

from config import GROQ_API_KEY, GROQ_MODEL
from .ai_service_interface import AIServiceInterface


class GroqService(AIServiceInterface):
    """Groq backend (OpenAI-compatible chat API)."""

    provider_name = "groq"

    def __init__(self, api_key: str = "", model: str = ""):
        super().__init__(api_key or GROQ_API_KEY or "", model or GROQ_MODEL)
        # Groq-specific client
        self.client = Groq(api_key=self.api_key)

    def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_completion_tokens=max_tokens,
        )
        return completion.choices[0].message.content or ""

from typing import List
from openai import OpenAI
from openai.types.chat import ChatCompletionMessageParam

from config import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL
from .ai_service_interface import AIServiceInterface


class OpenAIService(AIServiceInterface):
    """OpenAI chat completions backend."""

    provider_name = "openai"

    def __init__(self, api_key: str = "", model: str = ""):
        # Use values from environment if not provided
        super().__init__(api_key or OPENAI_API_KEY or "", model or OPENAI_MODEL)
        self.client = OpenAI(api_key=self.api_key, base_url=OPENAI_BASE_URL)

    def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        messages: List[ChatCompletionMessageParam] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if completion.choices and completion.choices[0].message.content:
            return completion.choices[0].message.content
        return ""

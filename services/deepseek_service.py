import requests

from config import DEEPSEEK_API_KEY, DEEPSEEK_BASE_URL, DEEPSEEK_MODEL, AI_REQUEST_TIMEOUT
from .ai_service_interface import AIServiceInterface


class DeepSeekService(AIServiceInterface):
    """DeepSeek backend over plain HTTP."""

    provider_name = "deepseek"

    def __init__(self, api_key: str = "", model: str = ""):
        super().__init__(api_key or DEEPSEEK_API_KEY or "", model or DEEPSEEK_MODEL)

        # DeepSeek API configuration
        self.api_url = f"{DEEPSEEK_BASE_URL}/v1/chat/completions"
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

    def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False
        }

        response = requests.post(self.api_url, json=payload, headers=self.headers, timeout=AI_REQUEST_TIMEOUT)
        response.raise_for_status()

        result = response.json()
        return result["choices"][0]["message"]["content"] or ""

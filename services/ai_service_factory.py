from typing import Dict, Optional, Type

from config import AI_PROVIDER
from utils.logger import logger
from .ai_service_interface import AIServiceInterface
from .deepseek_service import DeepSeekService
from .groq_service import GroqService
from .mock_ai_service import MockAIService
from .openai_service import OpenAIService


class AIServiceFactory:
    """Builds the configured classifier provider and caches one instance per (provider, model)."""

    # Providers selectable through AI_PROVIDER
    _services: Dict[str, Type[AIServiceInterface]] = {
        'openai': OpenAIService,
        'groq': GroqService,
        'deepseek': DeepSeekService,
        'mock': MockAIService,
    }

    _instances: Dict[str, AIServiceInterface] = {}

    @classmethod
    def create_service(cls, service_name: str, api_key: str = "", model: str = "") -> AIServiceInterface:
        """
        Return a provider instance, reusing the cached one for the same model.

        Empty ``api_key`` / ``model`` fall back to the provider's environment
        settings. Raises ValueError for a provider that is not registered.
        """
        provider = service_name.lower()
        if provider not in cls._services:
            raise ValueError(f"Unknown AI provider '{provider}'. Choose one of: {', '.join(cls._services)}")

        cache_key = f"{provider}_{model}"
        cached = cls._instances.get(cache_key)
        if cached is not None:
            return cached

        instance = cls._services[provider](api_key=api_key, model=model)
        cls._instances[cache_key] = instance
        logger.info(f"🤖 AI provider ready: {provider} (model={instance.model})")
        return instance

    @classmethod
    def create_from_settings(cls, provider: Optional[str] = None) -> AIServiceInterface:
        """The provider named by AI_PROVIDER; resolved once when the app starts."""
        return cls.create_service(provider or AI_PROVIDER)

    @classmethod
    def clear_cache(cls):
        cls._instances.clear()
        logger.info("Cleared cached AI providers")


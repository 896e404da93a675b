"""Provider adapters and their construction from settings."""

from __future__ import annotations

import logging
from typing import Dict

from ...errors import ProviderConfigurationError
from ...models.agent import Provider
from ...models.config import BotSettings
from .anthropic import AnthropicAdapter
from .base import ProviderAdapter
from .openai_compat import GROQ_TOOL_LIMIT, TOOL_NAME_ALIASES, OpenAICompatibleAdapter

logger = logging.getLogger(__name__)

__all__ = [
    "AnthropicAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "create_providers",
]


def create_providers(settings: BotSettings) -> Dict[Provider, ProviderAdapter]:
    """Build an adapter for every provider that has credentials configured."""

    common = {"max_tokens": settings.max_tokens, "temperature": settings.temperature}
    factories = {
        Provider.ANTHROPIC: lambda: AnthropicAdapter.from_credentials(
            settings.anthropic_api_key, settings.anthropic_base_url, **common
        ),
        Provider.ZAI: lambda: OpenAICompatibleAdapter.from_credentials(
            settings.zai_api_key, settings.zai_base_url, provider=Provider.ZAI, **common
        ),
        Provider.GROQ: lambda: OpenAICompatibleAdapter.from_credentials(
            settings.groq_api_key,
            settings.groq_base_url,
            provider=Provider.GROQ,
            max_tools=GROQ_TOOL_LIMIT,
            tool_aliases=TOOL_NAME_ALIASES,
            **common,
        ),
        Provider.OPENAI: lambda: OpenAICompatibleAdapter.from_credentials(
            settings.openai_api_key, settings.openai_base_url, provider=Provider.OPENAI, **common
        ),
    }

    providers: Dict[Provider, ProviderAdapter] = {}
    for provider, factory in factories.items():
        try:
            providers[provider] = factory()
        except ProviderConfigurationError:
            logger.debug("Provider %s has no credentials; skipping", provider.value)
    if settings.ai_provider not in providers:
        logger.error(
            "Configured provider %s has no credentials; replies will report a configuration problem",
            settings.ai_provider.value,
        )
    return providers

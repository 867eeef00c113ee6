"""Map a roster entry to its decision provider implementation."""

from __future__ import annotations

import httpx

from arena.config import Settings
from arena.llm_providers import AgentModelConfig, ProviderKind
from arena.retry import RetryPolicy

from .anthropic import AnthropicProvider
from .base import DecisionProvider
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider
from .openrouter import OpenRouterProvider

_HTTP_PROVIDERS: dict[ProviderKind, type] = {
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GEMINI: GeminiProvider,
    ProviderKind.OPENAI: OpenAICompatibleProvider,
    ProviderKind.DEEPSEEK: OpenAICompatibleProvider,
    ProviderKind.GROK: OpenAICompatibleProvider,
    ProviderKind.KIMI: OpenAICompatibleProvider,
    ProviderKind.QWEN: OpenAICompatibleProvider,
}


def build_provider(
    config: AgentModelConfig,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DecisionProvider:
    api_key = settings.api_key_for(config.api_key_env)

    if config.provider == ProviderKind.OPENROUTER:
        return OpenRouterProvider(config, api_key)

    provider_cls = _HTTP_PROVIDERS.get(config.provider)
    if provider_cls is None:
        raise ValueError(f"Unknown provider: {config.provider}")

    return provider_cls(
        config,
        api_key,
        retry_policy=RetryPolicy.from_config(settings.retry),
        timeout_seconds=settings.session.provider_timeout_seconds,
        transport=transport,
    )


def provider_availability(settings: Settings, roster: list[AgentModelConfig]) -> dict[str, bool]:
    """Which roster entries have credentials configured."""
    return {
        entry.external_id: build_provider(entry, settings).is_available()
        for entry in roster
    }

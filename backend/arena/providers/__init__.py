from .adapter import DecisionAdapter
from .anthropic import AnthropicProvider
from .base import DecisionProvider, HTTPDecisionProvider, ProviderResponse
from .exceptions import (
    DecisionParseError,
    DecisionValidationError,
    ProviderAuthError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider
from .openrouter import OpenRouterProvider
from .parser import extract_json_payload
from .router import build_provider, provider_availability
from .validator import validate_decision

__all__ = [
    "AnthropicProvider",
    "DecisionAdapter",
    "DecisionParseError",
    "DecisionProvider",
    "DecisionValidationError",
    "GeminiProvider",
    "HTTPDecisionProvider",
    "OpenAICompatibleProvider",
    "OpenRouterProvider",
    "ProviderAuthError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "ProviderRateLimitError",
    "ProviderResponse",
    "ProviderResponseError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "build_provider",
    "extract_json_payload",
    "provider_availability",
    "validate_decision",
]

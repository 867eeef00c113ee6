"""
Decision provider backed by a pydantic-ai Agent routed through OpenRouter.

Any OpenRouter model id ("anthropic/claude-sonnet-4.5", "qwen/qwen3-max", ...)
can compete without a dedicated HTTP adapter. The agent returns plain text;
parsing and validation happen in the adapter like every other provider.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from arena.llm_providers import AgentModelConfig

from .base import DecisionProvider, ProviderResponse, require_text
from .exceptions import (
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


def build_openrouter_model(model_name: str, api_key: str) -> Any:
    """Create the pydantic-ai model object for an OpenRouter model id."""
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openrouter import OpenRouterProvider as _OpenRouter

    return OpenAIChatModel(model_name, provider=_OpenRouter(api_key=api_key))


class OpenRouterProvider(DecisionProvider):
    def __init__(
        self,
        config: AgentModelConfig,
        api_key: str,
        model: Any | None = None,
    ):
        super().__init__(config, api_key)
        self._model = model

    def is_available(self) -> bool:
        return self._model is not None or bool(self.api_key)

    def _create_agent(self, system_prompt: str) -> Agent[None, str]:
        model = self._model or build_openrouter_model(self.config.model, self.api_key)
        return Agent(
            model,
            output_type=str,
            system_prompt=system_prompt,
            retries=1,
            model_settings={
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
            },
        )

    async def send_prompt(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        agent = self._create_agent(system_prompt)
        try:
            result = await agent.run(user_prompt)
        except ModelHTTPError as e:
            if e.status_code in (401, 403):
                raise ProviderAuthError(str(e), status_code=e.status_code) from e
            if e.status_code == 429:
                raise ProviderRateLimitError(str(e), status_code=e.status_code) from e
            raise ProviderUnavailableError(str(e), status_code=e.status_code) from e
        except UnexpectedModelBehavior as e:
            raise ProviderResponseError(f"openrouter: {e}") from e

        text = require_text(self.name, result.output)
        usage = result.usage()
        tokens = getattr(usage, "total_tokens", None) or 0
        return ProviderResponse(text=text, tokens_used=int(tokens))

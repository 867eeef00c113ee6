from __future__ import annotations

from arena.llm_providers import ANTHROPIC_BASE_URL, ANTHROPIC_VERSION

from .base import HTTPDecisionProvider, ProviderResponse, require_text
from .exceptions import ProviderResponseError


class AnthropicProvider(HTTPDecisionProvider):
    """Anthropic Messages API."""

    default_base_url = ANTHROPIC_BASE_URL

    async def send_prompt(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        body = await self._post(
            "/messages",
            json_data={
                "model": self.config.model,
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_prompt}],
            },
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
        )

        content = body.get("content") or []
        if not content or not isinstance(content[0], dict):
            raise ProviderResponseError("anthropic response has no content blocks")
        text = require_text(self.name, content[0].get("text"))

        usage = body.get("usage") or {}
        tokens = int(usage.get("input_tokens") or 0) + int(usage.get("output_tokens") or 0)
        return ProviderResponse(text=text, tokens_used=tokens)

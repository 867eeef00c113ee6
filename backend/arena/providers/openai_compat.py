from __future__ import annotations

from arena.llm_providers import OPENAI_COMPATIBLE_BASE_URLS, ProviderKind

from .base import HTTPDecisionProvider, ProviderResponse, require_text
from .exceptions import ProviderResponseError


class OpenAICompatibleProvider(HTTPDecisionProvider):
    """Chat Completions API, shared by OpenAI, DeepSeek, Grok, Kimi and Qwen."""

    @property
    def base_url(self) -> str:
        if self.config.base_url:
            return self.config.base_url.rstrip("/")
        return OPENAI_COMPATIBLE_BASE_URLS[self.config.provider]

    def _token_limit_field(self) -> str:
        # Newer OpenAI models reject max_tokens
        if self.config.provider == ProviderKind.OPENAI:
            return "max_completion_tokens"
        return "max_tokens"

    async def send_prompt(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        body = await self._post(
            "/chat/completions",
            json_data={
                "model": self.config.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                self._token_limit_field(): self.config.max_tokens,
                "temperature": self.config.temperature,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        choices = body.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise ProviderResponseError(f"{self.name} response has no choices")
        message = choices[0].get("message") or {}
        text = require_text(self.name, message.get("content"))

        usage = body.get("usage") or {}
        return ProviderResponse(text=text, tokens_used=int(usage.get("total_tokens") or 0))

from __future__ import annotations

from arena.llm_providers import GEMINI_BASE_URL

from .base import HTTPDecisionProvider, ProviderResponse, require_text
from .exceptions import ProviderResponseError


class GeminiProvider(HTTPDecisionProvider):
    """Google Generative Language generateContent API."""

    default_base_url = GEMINI_BASE_URL

    async def send_prompt(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        body = await self._post(
            f"/models/{self.config.model}:generateContent",
            json_data={
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
                "generationConfig": {
                    "temperature": self.config.temperature,
                    "maxOutputTokens": self.config.max_tokens,
                },
            },
            params={"key": self.api_key},
        )

        candidates = body.get("candidates") or []
        try:
            parts = candidates[0]["content"]["parts"]
        except (IndexError, KeyError, TypeError) as e:
            raise ProviderResponseError("gemini response has no candidate content") from e
        text = require_text(self.name, "".join(p.get("text", "") for p in parts if isinstance(p, dict)))

        usage = body.get("usageMetadata") or {}
        return ProviderResponse(text=text, tokens_used=int(usage.get("totalTokenCount") or 0))

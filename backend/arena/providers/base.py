from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from arena.llm_providers import AgentModelConfig
from arena.retry import RETRYABLE_STATUS_CODES, RetryPolicy

from .exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderResponse:
    text: str
    tokens_used: int = 0


class DecisionProvider(ABC):
    """One remote reasoning service: send a prompt, get raw text back."""

    def __init__(self, config: AgentModelConfig, api_key: str):
        self.config = config
        self.api_key = api_key

    @property
    def name(self) -> str:
        return self.config.provider.value

    def is_available(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def send_prompt(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        """Return the model's raw text, or raise a ProviderError."""


class HTTPDecisionProvider(DecisionProvider):
    """Shared httpx plumbing: status mapping and the declared retry policy."""

    default_base_url: str = ""

    def __init__(
        self,
        config: AgentModelConfig,
        api_key: str,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, api_key)
        self.retry_policy = (retry_policy or RetryPolicy()).with_retry_on(
            ProviderRateLimitError,
            ProviderUnavailableError,
            ProviderTimeoutError,
        )
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return (self.config.base_url or self.default_base_url).rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def _post(
        self,
        endpoint: str,
        json_data: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.is_available():
            raise ProviderNotConfiguredError(
                f"{self.config.api_key_env} not configured for {self.config.external_id}"
            )

        async def attempt() -> dict[str, Any]:
            async with self._client() as client:
                try:
                    response = await client.post(
                        endpoint, json=json_data, headers=headers, params=params
                    )
                except httpx.TimeoutException as e:
                    raise ProviderTimeoutError(f"{self.name} timed out: {e}") from e
                except httpx.RequestError as e:
                    raise ProviderUnavailableError(f"{self.name} network error: {e}") from e
            return self._handle_response(response)

        return await self.retry_policy.run(attempt, description=f"{self.name} request")

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        status = response.status_code
        if status in (401, 403):
            raise ProviderAuthError(f"{self.name} authentication failed", status_code=status)
        if status == 429:
            raise ProviderRateLimitError(f"{self.name} rate limited", status_code=status)
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            raise ProviderUnavailableError(
                f"{self.name} server error {status}", status_code=status
            )
        if status >= 400:
            raise ProviderResponseError(
                f"{self.name} API error {status}: {response.text[:200]}",
                status_code=status,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.name} returned non-JSON body") from e
        if not isinstance(body, dict):
            raise ProviderResponseError(f"{self.name} returned unexpected envelope")
        return body


def require_text(provider: str, text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ProviderResponseError(f"{provider} returned no text content")
    return text


__all__ = [
    "DecisionProvider",
    "HTTPDecisionProvider",
    "ProviderError",
    "ProviderResponse",
    "require_text",
]

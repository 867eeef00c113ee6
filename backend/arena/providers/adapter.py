"""
Decision Provider Adapter

One call signature over every provider: send the prompt under a hard timeout,
parse the text, validate the structure, and hand back a tagged success or
failure value. Nothing raised by a provider escapes ``get_decision``.
"""

from __future__ import annotations

import asyncio
import logging
import time

import logfire

from arena.schemas.decision import DecisionFailure, DecisionSuccess, FailureKind

from .base import DecisionProvider
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
from .parser import extract_json_payload
from .validator import validate_decision

logger = logging.getLogger(__name__)

_FAILURE_KINDS: list[tuple[type[ProviderError], FailureKind]] = [
    (ProviderNotConfiguredError, FailureKind.NOT_CONFIGURED),
    (ProviderAuthError, FailureKind.AUTH),
    (ProviderRateLimitError, FailureKind.RATE_LIMITED),
    (ProviderTimeoutError, FailureKind.TIMEOUT),
    (ProviderUnavailableError, FailureKind.UNAVAILABLE),
    (ProviderResponseError, FailureKind.HTTP_ERROR),
]


def _failure_kind(exc: ProviderError) -> FailureKind:
    for exc_type, kind in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return FailureKind.HTTP_ERROR


class DecisionAdapter:
    def __init__(self, provider: DecisionProvider, timeout_seconds: float):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def get_decision(
        self, system_prompt: str, context: str
    ) -> DecisionSuccess | DecisionFailure:
        agent = self.provider.config.external_id
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        if not self.provider.is_available():
            return DecisionFailure(
                reason=FailureKind.NOT_CONFIGURED,
                message=f"{self.provider.config.api_key_env} not configured",
            )

        with logfire.span("decision.provider_call", agent=agent, provider=self.provider.name):
            try:
                response = await asyncio.wait_for(
                    self.provider.send_prompt(system_prompt, context),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"{agent}: provider call timed out after {self.timeout_seconds}s")
                return DecisionFailure(
                    reason=FailureKind.TIMEOUT,
                    message=f"provider call exceeded {self.timeout_seconds:.0f}s",
                    latency_ms=elapsed_ms(),
                )
            except ProviderError as e:
                logger.warning(f"{agent}: provider error: {e}")
                return DecisionFailure(
                    reason=_failure_kind(e),
                    message=str(e),
                    latency_ms=elapsed_ms(),
                )
            except Exception as e:
                logger.error(f"{agent}: unexpected provider failure: {e}", exc_info=True)
                return DecisionFailure(
                    reason=FailureKind.NETWORK,
                    message=f"{type(e).__name__}: {e}",
                    latency_ms=elapsed_ms(),
                )

        latency = elapsed_ms()
        try:
            payload = extract_json_payload(response.text)
        except DecisionParseError as e:
            logger.warning(f"{agent}: malformed response: {e}")
            return DecisionFailure(
                reason=FailureKind.MALFORMED_RESPONSE,
                message=str(e),
                raw_response=response.text,
                tokens_used=response.tokens_used,
                latency_ms=latency,
            )

        try:
            decision = validate_decision(payload)
        except DecisionValidationError as e:
            logger.warning(f"{agent}: invalid decision: {e}")
            return DecisionFailure(
                reason=FailureKind.INVALID_DECISION,
                message=str(e),
                raw_response=response.text,
                tokens_used=response.tokens_used,
                latency_ms=latency,
            )

        logfire.info(
            "Decision received",
            agent=agent,
            sentiment=decision.sentiment.value,
            actions=len(decision.actions),
            tokens=response.tokens_used,
            latency_ms=latency,
        )
        return DecisionSuccess(
            decision=decision,
            raw_response=response.text,
            tokens_used=response.tokens_used,
            latency_ms=latency,
        )

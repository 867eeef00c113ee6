"""Normalized decision types returned by the provider adapter."""

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import Field

from arena.schemas.common import BaseSchema, Sentiment, TradeSide


class TradeAction(BaseSchema):
    """One proposed action as the executor sees it."""

    side: TradeSide = Field(alias="action")
    instrument: str = Field(default="", alias="stock_code")
    quantity: float = 0.0
    rationale: str = Field(default="", alias="reasoning")
    confidence: float | None = Field(default=None, ge=0, le=100)
    target_price: float | None = None
    stop_loss: float | None = None
    leverage: float | None = None

    @property
    def is_hold(self) -> bool:
        return self.side == TradeSide.HOLD


class Decision(BaseSchema):
    """Structurally validated decision from one provider call."""

    sentiment: Sentiment = Sentiment.NEUTRAL
    top_picks: list[str] = Field(default_factory=list)
    avoid_list: list[str] = Field(default_factory=list)
    summary: str = ""
    actions: list[TradeAction] = Field(default_factory=list)


class FailureKind(StrEnum):
    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    HTTP_ERROR = "http_error"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_DECISION = "invalid_decision"
    INTERRUPTED = "interrupted"


class DecisionSuccess(BaseSchema):
    kind: Literal["success"] = "success"
    decision: Decision
    raw_response: str
    tokens_used: int = 0
    latency_ms: int = 0


class DecisionFailure(BaseSchema):
    kind: Literal["failure"] = "failure"
    reason: FailureKind
    message: str
    raw_response: str | None = None
    tokens_used: int = 0
    latency_ms: int = 0


DecisionOutcome = Annotated[
    Union[DecisionSuccess, DecisionFailure],
    Field(discriminator="kind"),
]

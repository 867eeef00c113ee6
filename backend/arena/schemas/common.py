"""Common Pydantic schemas, base classes and shared enums."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class AgentStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISQUALIFIED = "disqualified"


class CompetitionMode(StrEnum):
    """Named rule bundles an agent competes under."""

    NEW_BASELINE = "NEW_BASELINE"
    MONK_MODE = "MONK_MODE"
    SITUATIONAL_AWARENESS = "SITUATIONAL_AWARENESS"
    MAX_LEVERAGE = "MAX_LEVERAGE"


class TradeSide(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Sentiment(StrEnum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"

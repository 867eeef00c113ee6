"""Market data schemas: quotes and instrument profiles for screening."""

from datetime import datetime

from pydantic import Field

from arena.schemas.common import BaseSchema


class Quote(BaseSchema):
    instrument: str
    price: float
    previous_close: float | None = None
    volume: float | None = None
    change_pct: float | None = None
    as_of: datetime | None = None
    source: str = "unknown"


class InstrumentProfile(BaseSchema):
    """Fundamentals and recent trading statistics for one listed instrument.

    Every field except ``code`` is optional; screening skips whatever is missing.
    """

    code: str
    name: str = ""
    sector: str | None = None
    reference_price: float | None = None

    # YoY performance category 1-6
    yoy_category: int | None = None
    pe_ratio: float | None = None
    latest_profit: float | None = None
    profit_growth: float | None = None
    revenue_growth: float | None = None
    dividend_yield: float | None = None

    avg_volume: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None


class ScreenedInstrument(BaseSchema):
    code: str
    name: str = ""
    sector: str | None = None
    price: float | None = None
    change_pct: float | None = None
    volume_ratio: float | None = None
    price_position: float | None = None
    fundamental_score: float = 0.0
    technical_score: float = 50.0
    overall_score: float = 0.0
    signals: list[str] = Field(default_factory=list)
    tier: int | None = None
    pe_ratio: float | None = None
    dividend_yield: float | None = None
    yoy_category: int | None = None

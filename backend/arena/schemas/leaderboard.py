"""Leaderboard and performance metric schemas."""

import math
from uuid import UUID

from pydantic import field_serializer

from arena.schemas.common import BaseSchema


class AgentMetrics(BaseSchema):
    total_trades: int = 0
    winning_trades: int = 0
    win_rate: float = 0.0
    expectancy: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown_pct: float = 0.0
    avg_trade_size: float = 0.0
    median_trade_size: float = 0.0
    avg_hold_hours: float = 0.0
    median_hold_hours: float = 0.0
    total_fees: float = 0.0
    highest_win: float = 0.0
    biggest_loss: float = 0.0
    total_buys: int = 0
    total_sells: int = 0
    long_pct: float = 0.0
    avg_confidence: float = 0.0
    open_positions: int = 0
    margin_used_pct: float = 0.0
    # Against the latest daily snapshot
    daily_change: float = 0.0
    daily_change_pct: float = 0.0

    @field_serializer("profit_factor")
    def _finite_profit_factor(self, value: float) -> float | None:
        # No losing trades yet: infinite, which JSON cannot carry
        return value if math.isfinite(value) else None


class LeaderboardEntry(BaseSchema):
    rank: int
    agent_id: UUID
    external_id: str
    display_name: str
    mode: str
    status: str
    portfolio_value: float
    cash: float
    pnl_pct: float
    metrics: AgentMetrics | None = None

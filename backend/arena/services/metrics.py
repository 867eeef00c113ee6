"""
Performance metrics over the ledger.

Every function here is pure: callers pass in realized P&L values, trade
timestamps and the snapshot value series already loaded from the store.
"""

import math
import statistics
from datetime import datetime
from typing import Iterable, Optional, Sequence

from arena.config import MetricsConfig
from arena.models import Agent, DailySnapshot, Position, TradeRecord
from arena.models.base import ensure_utc
from arena.schemas.common import TradeSide
from arena.schemas.leaderboard import AgentMetrics


def _floats(values: Iterable) -> list[float]:
    return [float(v) for v in values if v is not None]


def win_rate(total_trades: int, winning_trades: int) -> float:
    if total_trades <= 0:
        return 0.0
    return winning_trades / total_trades


def expectancy(realized_pnls: Sequence[float]) -> float:
    """winRate * avgWin - (1 - winRate) * avgLoss over closed trades."""
    pnls = _floats(realized_pnls)
    if not pnls:
        return 0.0
    wins = [p for p in pnls if p > 0]
    losses = [-p for p in pnls if p <= 0]
    rate = len(wins) / len(pnls)
    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    return rate * avg_win - (1 - rate) * avg_loss


def profit_factor(realized_pnls: Sequence[float]) -> float:
    """Gross profit / gross loss; inf with profit and no loss, 0 with no profit."""
    pnls = _floats(realized_pnls)
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = -sum(p for p in pnls if p < 0)
    if gross_profit <= 0:
        return 0.0
    if gross_loss == 0:
        return math.inf
    return gross_profit / gross_loss


def daily_returns(values: Sequence[float]) -> list[float]:
    series = _floats(values)
    return [
        (curr - prev) / prev
        for prev, curr in zip(series, series[1:])
        if prev > 0
    ]


def sharpe_ratio(
    values: Sequence[float],
    reference_annual_rate: float = 0.0,
    trading_days: int = 252,
    cap: float = 3.0,
) -> float:
    """
    Mean daily excess return over its standard deviation, scaled by sqrt(252 / N).

    N is the number of daily returns. The result is clamped to [-cap, cap];
    a flat series scores ``cap`` when its excess return is positive, else 0.
    """
    returns = daily_returns(values)
    n = len(returns)
    if n == 0:
        return 0.0

    daily_reference = reference_annual_rate / trading_days
    excess = statistics.fmean(returns) - daily_reference
    stdev = statistics.pstdev(returns) if n > 1 else 0.0

    if stdev == 0:
        return cap if excess > 0 else 0.0

    ratio = excess / stdev * math.sqrt(trading_days / n)
    return max(-cap, min(cap, ratio))


def max_drawdown_pct(values: Sequence[float]) -> float:
    """Largest peak-to-trough decline, as a positive percentage."""
    peak: Optional[float] = None
    worst = 0.0
    for value in _floats(values):
        if peak is None or value > peak:
            peak = value
        elif peak > 0:
            worst = max(worst, (peak - value) / peak * 100)
    return worst


def size_stats(notionals: Sequence[float]) -> tuple[float, float]:
    """(average, median) trade notional."""
    sizes = _floats(notionals)
    if not sizes:
        return 0.0, 0.0
    return statistics.fmean(sizes), statistics.median(sizes)


def hold_time_stats(timestamps: Sequence[datetime]) -> tuple[float, float]:
    """(average, median) hours between consecutive trades."""
    ordered = sorted(ensure_utc(t) for t in timestamps if t is not None)
    gaps = [
        (b - a).total_seconds() / 3600
        for a, b in zip(ordered, ordered[1:])
    ]
    if not gaps:
        return 0.0, 0.0
    return statistics.fmean(gaps), statistics.median(gaps)


def pnl_extremes(realized_pnls: Sequence[float]) -> tuple[float, float]:
    """(highest win, biggest loss); the loss is negative, 0 when there is none."""
    pnls = _floats(realized_pnls)
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    return (max(wins) if wins else 0.0), (min(losses) if losses else 0.0)


def margin_used_pct(positions: Sequence[Position], portfolio_value: float) -> float:
    """Share of portfolio value held in positions at their last price."""
    value = float(portfolio_value or 0)
    if value <= 0:
        return 0.0
    held = sum(float(p.market_value) for p in positions)
    return held / value * 100


def change_since(value: float, previous: Optional[float]) -> tuple[float, float]:
    if previous is None:
        return 0.0, 0.0
    change = float(value) - float(previous)
    return change, (change / float(previous) * 100 if previous > 0 else 0.0)


def compute_agent_metrics(
    agent: Agent,
    trades: Sequence[TradeRecord],
    snapshots: Sequence[DailySnapshot],
    config: Optional[MetricsConfig] = None,
    positions: Sequence[Position] = (),
) -> AgentMetrics:
    config = config or MetricsConfig()
    realized = [t.realized_pnl for t in trades if t.realized_pnl is not None]
    values = [s.portfolio_value for s in sorted(snapshots, key=lambda s: s.snapshot_date)]
    avg_size, median_size = size_stats([t.notional for t in trades])
    avg_hold, median_hold = hold_time_stats([t.executed_at for t in trades])
    highest_win, biggest_loss = pnl_extremes(realized)
    buys = sum(1 for t in trades if t.side == TradeSide.BUY.value)
    confidences = _floats(t.confidence for t in trades)
    daily_change, daily_change_pct = change_since(
        agent.portfolio_value, values[-1] if values else None
    )

    return AgentMetrics(
        total_trades=agent.total_trades,
        winning_trades=agent.winning_trades,
        win_rate=win_rate(agent.total_trades, agent.winning_trades),
        expectancy=expectancy(realized),
        profit_factor=profit_factor(realized),
        sharpe_ratio=sharpe_ratio(
            values,
            reference_annual_rate=config.reference_annual_rate,
            trading_days=config.trading_days_per_year,
            cap=config.sharpe_cap,
        ),
        max_drawdown_pct=max_drawdown_pct(values),
        avg_trade_size=avg_size,
        median_trade_size=median_size,
        avg_hold_hours=avg_hold,
        median_hold_hours=median_hold,
        total_fees=sum(_floats(t.fee for t in trades)),
        highest_win=highest_win,
        biggest_loss=biggest_loss,
        total_buys=buys,
        total_sells=len(trades) - buys,
        long_pct=buys / len(trades) * 100 if trades else 0.0,
        avg_confidence=statistics.fmean(confidences) if confidences else 0.0,
        open_positions=len(positions),
        margin_used_pct=margin_used_pct(positions, agent.portfolio_value),
        daily_change=daily_change,
        daily_change_pct=daily_change_pct,
    )

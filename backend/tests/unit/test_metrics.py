"""Tests for the pure performance metric functions."""

import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from arena.models import Agent, DailySnapshot, Position, TradeRecord
from arena.schemas.leaderboard import AgentMetrics
from arena.services.metrics import (
    compute_agent_metrics,
    daily_returns,
    expectancy,
    hold_time_stats,
    margin_used_pct,
    max_drawdown_pct,
    pnl_extremes,
    profit_factor,
    sharpe_ratio,
    size_stats,
    win_rate,
)


def test_win_rate_handles_no_trades() -> None:
    assert win_rate(0, 0) == 0.0
    assert win_rate(4, 3) == 0.75


def test_expectancy_weights_average_win_and_loss() -> None:
    # win rate 0.5, avg win 75, avg loss 35
    assert expectancy([100, -50, 50, -20]) == pytest.approx(20.0)


def test_expectancy_counts_breakeven_as_loss() -> None:
    assert expectancy([0, 10]) == pytest.approx(5.0)
    assert expectancy([]) == 0.0


def test_profit_factor() -> None:
    assert profit_factor([100, -50, 50, -20]) == pytest.approx(150 / 70)
    assert profit_factor([10, 20]) == math.inf
    assert profit_factor([-5]) == 0.0
    assert profit_factor([]) == 0.0


def test_infinite_profit_factor_serializes_as_null() -> None:
    metrics = AgentMetrics(profit_factor=math.inf)
    assert metrics.model_dump(mode="json")["profit_factor"] is None
    assert AgentMetrics(profit_factor=1.5).model_dump(mode="json")["profit_factor"] == 1.5


def test_daily_returns_skip_non_positive_bases() -> None:
    assert daily_returns([100, 110, 99]) == pytest.approx([0.1, -0.1])
    assert daily_returns([0, 50, 100]) == pytest.approx([1.0])


def test_sharpe_flat_series() -> None:
    assert sharpe_ratio([100, 100, 100]) == 0.0
    assert sharpe_ratio([100]) == 0.0
    # Constant positive growth has zero deviation
    assert sharpe_ratio([100, 200, 400]) == 3.0
    assert sharpe_ratio([100, 50, 25]) == 0.0


def test_sharpe_is_clamped() -> None:
    assert sharpe_ratio([100, 102, 103]) == 3.0
    assert sharpe_ratio([100, 98, 97]) == -3.0
    assert sharpe_ratio([100, 102, 103], cap=10.0) > 3.0


def test_sharpe_scales_by_sample_length() -> None:
    # returns 0.05 and -0.04
    expected = 0.005 / 0.045 * math.sqrt(252 / 2)
    assert sharpe_ratio([100, 105, 100.8]) == pytest.approx(expected)


def test_sharpe_subtracts_reference_rate() -> None:
    with_reference = sharpe_ratio([100, 105, 100.8], reference_annual_rate=0.252)
    expected = (0.005 - 0.001) / 0.045 * math.sqrt(126)
    assert with_reference == pytest.approx(expected)


def test_max_drawdown() -> None:
    assert max_drawdown_pct([100, 120, 90, 130, 117]) == pytest.approx(25.0)
    assert max_drawdown_pct([100, 110, 120]) == 0.0
    assert max_drawdown_pct([]) == 0.0


def test_size_and_hold_stats() -> None:
    assert size_stats([100, 300, 200]) == (200.0, 200.0)
    assert size_stats([]) == (0.0, 0.0)

    start = datetime(2026, 1, 5, 2, 0)
    stamps = [start + timedelta(hours=8), start, start + timedelta(hours=2)]
    assert hold_time_stats(stamps) == (4.0, 4.0)
    assert hold_time_stats([start]) == (0.0, 0.0)


def test_compute_agent_metrics_from_ledger_rows() -> None:
    agent = Agent(
        external_id="alpha", total_trades=4, winning_trades=1, portfolio_value=Decimal("10200")
    )
    opened = datetime(2026, 1, 5, 2, 0, tzinfo=timezone.utc)
    trades = [
        TradeRecord(
            side="BUY",
            notional=Decimal("1000"),
            fee=Decimal("1.5"),
            confidence=Decimal("80"),
            realized_pnl=None,
            executed_at=opened,
        ),
        TradeRecord(
            side="SELL",
            notional=Decimal("1100"),
            fee=Decimal("1.65"),
            confidence=Decimal("60"),
            realized_pnl=Decimal("98.35"),
            executed_at=opened + timedelta(hours=3),
        ),
        TradeRecord(
            side="BUY",
            notional=Decimal("500"),
            fee=Decimal("0.75"),
            realized_pnl=None,
            executed_at=opened + timedelta(hours=4),
        ),
        TradeRecord(
            side="SELL",
            notional=Decimal("450"),
            fee=Decimal("0.675"),
            confidence=Decimal("70"),
            realized_pnl=Decimal("-50"),
            executed_at=opened + timedelta(hours=7),
        ),
    ]
    snapshots = [
        DailySnapshot(snapshot_date=date(2026, 1, 6), portfolio_value=Decimal("10100")),
        DailySnapshot(snapshot_date=date(2026, 1, 5), portfolio_value=Decimal("10000")),
        DailySnapshot(snapshot_date=date(2026, 1, 7), portfolio_value=Decimal("9999")),
    ]
    positions = [
        Position(instrument="1155", quantity=Decimal("100"), last_price=Decimal("12")),
    ]

    metrics = compute_agent_metrics(agent, trades, snapshots, positions=positions)

    assert metrics.win_rate == 0.25
    assert metrics.profit_factor == pytest.approx(98.35 / 50)
    assert metrics.max_drawdown_pct == pytest.approx(1.0)
    assert metrics.avg_trade_size == pytest.approx(762.5)
    assert metrics.median_hold_hours == pytest.approx(3.0)
    assert -3.0 <= metrics.sharpe_ratio <= 3.0

    assert metrics.total_fees == pytest.approx(4.575)
    assert metrics.highest_win == pytest.approx(98.35)
    assert metrics.biggest_loss == pytest.approx(-50.0)
    assert (metrics.total_buys, metrics.total_sells) == (2, 2)
    assert metrics.long_pct == pytest.approx(50.0)
    # The trade without a confidence is left out of the average
    assert metrics.avg_confidence == pytest.approx(70.0)
    assert metrics.open_positions == 1
    assert metrics.margin_used_pct == pytest.approx(1200 / 10200 * 100)
    # Against the Jan 7 snapshot, the latest by date
    assert metrics.daily_change == pytest.approx(201.0)
    assert metrics.daily_change_pct == pytest.approx(201 / 9999 * 100)


def test_agent_metrics_without_activity() -> None:
    agent = Agent(
        external_id="alpha", total_trades=0, winning_trades=0, portfolio_value=Decimal("10000")
    )

    metrics = compute_agent_metrics(agent, [], [])

    assert metrics.total_fees == 0.0
    assert (metrics.highest_win, metrics.biggest_loss) == (0.0, 0.0)
    assert metrics.long_pct == 0.0
    assert metrics.avg_confidence == 0.0
    assert metrics.open_positions == 0
    assert metrics.margin_used_pct == 0.0
    assert (metrics.daily_change, metrics.daily_change_pct) == (0.0, 0.0)


def test_pnl_extremes_and_margin() -> None:
    assert pnl_extremes([Decimal("12"), Decimal("-4"), Decimal("30"), Decimal("-9")]) == (30.0, -9.0)
    assert pnl_extremes([]) == (0.0, 0.0)
    held = [Position(instrument="1155", quantity=Decimal("10"), last_price=Decimal("50"))]
    assert margin_used_pct(held, Decimal("2000")) == pytest.approx(25.0)
    assert margin_used_pct(held, Decimal("0")) == 0.0

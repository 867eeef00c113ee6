"""Tests for revaluation, ranking and the leaderboard view."""

import asyncio
from decimal import Decimal

import pytest

from arena.models import Position
from arena.schemas.common import CompetitionMode
from arena.schemas.market import Quote
from arena.services.leaderboard import leaderboard_service, rank_agents
from arena.services.ledger import ledger_store
from tests.support import open_ledger, seed_ledger

BASELINE = CompetitionMode.NEW_BASELINE


async def _ledger(values: dict[str, str]):
    engine, factory = await open_ledger()
    agents = await seed_ledger(factory, {external_id: BASELINE for external_id in values})
    async with factory() as db:
        for external_id, value in values.items():
            agent = await ledger_store.get_agent(db, agents[external_id].id)
            agent.portfolio_value = Decimal(value)
            agent.cash = Decimal(value)
        await db.commit()
    return engine, factory, agents


def test_ranks_are_dense_and_break_ties_by_external_id() -> None:
    async def run():
        engine, factory, _ = await _ledger(
            {"delta": "9800", "alpha": "10100", "charlie": "10100", "bravo": "10500"}
        )
        async with factory() as db:
            ordered = await leaderboard_service.recompute_ranks(db)
        async with factory() as db:
            stored = {a.external_id: a.rank for a in await ledger_store.list_agents(db)}
        await engine.dispose()
        return ordered, stored

    ordered, stored = asyncio.run(run())

    assert [a.external_id for a in ordered] == ["bravo", "alpha", "charlie", "delta"]
    assert stored == {"bravo": 1, "alpha": 2, "charlie": 3, "delta": 4}


def test_rank_agents_is_a_total_order() -> None:
    async def run():
        engine, factory, _ = await _ledger({"alpha": "10000", "beta": "10000"})
        async with factory() as db:
            agents = await ledger_store.list_agents(db)
        await engine.dispose()
        return agents

    agents = asyncio.run(run())
    forward = [a.external_id for _, a in rank_agents(agents)]
    backward = [a.external_id for _, a in rank_agents(list(reversed(agents)))]
    assert forward == backward == ["alpha", "beta"]


def test_revaluation_marks_positions_to_quotes() -> None:
    async def run():
        engine, factory, agents = await _ledger({"alpha": "9000", "beta": "10000"})
        alpha_id = agents["alpha"].id
        async with factory() as db:
            db.add(
                Position(
                    agent_id=alpha_id,
                    instrument="1155",
                    quantity=Decimal("100"),
                    avg_entry_price=Decimal("10"),
                    last_price=Decimal("10"),
                )
            )
            db.add(
                Position(
                    agent_id=alpha_id,
                    instrument="5347",
                    quantity=Decimal("50"),
                    avg_entry_price=Decimal("4"),
                    last_price=Decimal("4"),
                )
            )
            await db.commit()

        quotes = {"1155": Quote(instrument="1155", price=12.5)}
        async with factory() as db:
            await leaderboard_service.revalue_portfolios(db, quotes)
            await leaderboard_service.recompute_ranks(db)

        async with factory() as db:
            alpha = await ledger_store.get_agent(db, alpha_id)
            marked = await ledger_store.get_position(db, alpha_id, "1155")
            stale = await ledger_store.get_position(db, alpha_id, "5347")
            board = await leaderboard_service.get_leaderboard(db)
        await engine.dispose()
        return alpha, marked, stale, board

    alpha, marked, stale, board = asyncio.run(run())

    # 9000 cash + 100 * 12.5 + 50 * 4 (no quote, keeps its last price)
    assert alpha.portfolio_value == Decimal("10450")
    assert alpha.rank == 1
    assert marked.last_price == Decimal("12.5")
    assert stale.last_price == Decimal("4")
    assert [entry.external_id for entry in board] == ["alpha", "beta"]
    assert board[0].pnl_pct == pytest.approx(4.5)
    assert board[0].metrics is not None


def test_leaderboard_without_metrics() -> None:
    async def run():
        engine, factory, _ = await _ledger({"alpha": "10000"})
        async with factory() as db:
            board = await leaderboard_service.get_leaderboard(db, include_metrics=False)
        await engine.dispose()
        return board

    (entry,) = asyncio.run(run())
    assert entry.rank == 1
    assert entry.metrics is None
    assert entry.mode == "NEW_BASELINE"

"""End-to-end tests for one session pass against an in-memory ledger."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from arena.errors import SessionTransitionError
from arena.schemas.common import CompetitionMode, Sentiment, TradeSide
from arena.schemas.decision import (
    Decision,
    DecisionFailure,
    DecisionSuccess,
    FailureKind,
    TradeAction,
)
from arena.schemas.market import InstrumentProfile
from arena.schemas.session import (
    AgentOutcome,
    GateOutcome,
    SessionReport,
    SessionState,
)
from arena.schemas.trading import ExecutionStatus, RejectionReason
from arena.services.ledger import ledger_store
from arena.services.quotes import QuoteResolver, StaticPriceSource
from arena.services.session_runner import SessionRunner, transition
from tests.support import (
    LUNCH_UTC,
    MARKET_OPEN_UTC,
    WEEKEND_UTC,
    make_roster,
    make_settings,
    open_ledger,
    seed_ledger,
)

BASELINE = CompetitionMode.NEW_BASELINE

PROFILES = [
    InstrumentProfile(
        code="1155", name="Maybank", sector="Finance", yoy_category=1, pe_ratio=11, reference_price=10.0
    ),
    InstrumentProfile(code="5347", name="Tenaga", sector="Utilities", yoy_category=3, pe_ratio=14),
]


def decision(*actions: TradeAction, sentiment: Sentiment = Sentiment.BULLISH) -> DecisionSuccess:
    return DecisionSuccess(
        decision=Decision(sentiment=sentiment, summary="Scripted view", actions=list(actions)),
        raw_response="{}",
        tokens_used=1000,
        latency_ms=40,
    )


def buy(quantity: float, instrument: str = "1155") -> TradeAction:
    return TradeAction(side=TradeSide.BUY, instrument=instrument, quantity=quantity)


HOLD = decision(TradeAction(side=TradeSide.HOLD), sentiment=Sentiment.NEUTRAL)
TIMEOUT = DecisionFailure(reason=FailureKind.TIMEOUT, message="provider call exceeded 90s", latency_ms=90000)


class ScriptedAdapter:
    """Stands in for a DecisionAdapter; replays one outcome and records the briefs."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.contexts: list[str] = []

    async def get_decision(self, system_prompt: str, context: str):
        self.contexts.append(context)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class Arena:
    """An in-memory ledger plus a runner wired to scripted adapters."""

    def __init__(self, modes: dict[str, CompetitionMode], outcomes: dict, **runner_kwargs):
        self.modes = modes
        self.adapters = {external_id: ScriptedAdapter(o) for external_id, o in outcomes.items()}
        self.runner_kwargs = runner_kwargs

    async def __aenter__(self) -> "Arena":
        self.engine, self.factory = await open_ledger()
        self.agents = await seed_ledger(self.factory, self.modes)
        self.runner = SessionRunner(
            make_settings(),
            self.factory,
            QuoteResolver([StaticPriceSource({"1155": 10.0, "5347": 2.0})]),
            profiles=PROFILES,
            roster=make_roster(*self.adapters),
            adapter_factory=lambda entry: self.adapters[entry.external_id],
            **self.runner_kwargs,
        )
        return self

    async def __aexit__(self, *exc) -> None:
        await self.engine.dispose()

    async def agent(self, external_id: str):
        async with self.factory() as db:
            return await ledger_store.get_agent_by_external_id(db, external_id)

    async def decisions(self, external_id: str):
        async with self.factory() as db:
            return await ledger_store.list_decisions(db, self.agents[external_id].id)

    async def trades(self, external_id: str):
        async with self.factory() as db:
            return await ledger_store.list_trades(db, self.agents[external_id].id)

    async def session_runs(self):
        async with self.factory() as db:
            return await ledger_store.list_session_runs(db)


def by_agent(report: SessionReport) -> dict:
    return {r.external_id: r for r in report.results}


def test_one_agent_timing_out_does_not_stop_the_others() -> None:
    async def run():
        outcomes = {"alpha": decision(buy(100)), "beta": TIMEOUT, "gamma": HOLD}
        async with Arena({k: BASELINE for k in outcomes}, outcomes) as arena:
            report = await arena.runner.run(now=MARKET_OPEN_UTC)
            alpha = await arena.agent("alpha")
            decisions = {k: await arena.decisions(k) for k in outcomes}
            runs = await arena.session_runs()
        return report, alpha, decisions, runs

    report, alpha, decisions, runs = asyncio.run(run())
    results = by_agent(report)

    assert report.state == SessionState.COMPLETED
    assert report.gate == GateOutcome.OPEN
    assert report.cycle_key == "2026-01-05T10"
    assert results["alpha"].outcome == AgentOutcome.TRADED
    assert results["beta"].outcome == AgentOutcome.FAILED
    assert "timeout" in results["beta"].error
    assert results["gamma"].outcome == AgentOutcome.HOLD
    assert report.agents_processed == 3
    assert report.trades_executed == 1
    assert report.total_tokens_used == 2000
    assert report.estimated_cost == pytest.approx(0.008)

    # Ranks are refreshed despite the failure: alpha paid the buy fee
    assert alpha.cash == Decimal("8998.50")
    assert alpha.portfolio_value == Decimal("9998.50")
    assert [entry.external_id for entry in report.rankings] == ["beta", "gamma", "alpha"]
    assert results["alpha"].rank == 3
    assert alpha.rank == 3

    assert [d.decision_type for d in decisions["alpha"]] == ["TRADE"]
    assert [d.decision_type for d in decisions["beta"]] == ["FAILED"]
    assert decisions["beta"][0].error.startswith("timeout")
    assert [d.decision_type for d in decisions["gamma"]] == ["HOLD"]
    assert decisions["alpha"][0].actions[0]["stock_code"] == "1155"

    assert len(runs) == 1
    assert runs[0].id == report.session_id
    assert runs[0].state == "completed"
    assert runs[0].trades_executed == 1


@pytest.mark.parametrize("when", [WEEKEND_UTC, LUNCH_UTC])
def test_closed_market_skips_the_pass(when) -> None:
    async def run():
        async with Arena({"alpha": BASELINE}, {"alpha": decision(buy(100))}) as arena:
            report = await arena.runner.run(now=when)
            runs = await arena.session_runs()
            calls = len(arena.adapters["alpha"].contexts)
        return report, runs, calls

    report, runs, calls = asyncio.run(run())

    assert report.state == SessionState.SKIPPED
    assert report.gate == GateOutcome.MARKET_CLOSED
    assert report.competition_active
    assert not report.market_open
    assert report.results == []
    assert calls == 0
    assert [r.state for r in runs] == ["skipped"]


def test_inactive_competition_is_gated() -> None:
    async def run():
        async with Arena({"alpha": BASELINE}, {"alpha": HOLD}) as arena:
            async with arena.factory() as db:
                await ledger_store.set_competition_active(db, False)
            return await arena.runner.run(now=MARKET_OPEN_UTC)

    report = asyncio.run(run())
    assert report.state == SessionState.SKIPPED
    assert report.gate == GateOutcome.COMPETITION_INACTIVE
    assert not report.competition_active


def test_dry_run_validates_without_persisting() -> None:
    async def run():
        async with Arena({"alpha": BASELINE}, {"alpha": decision(buy(100))}) as arena:
            report = await arena.runner.run(dry_run=True, now=WEEKEND_UTC)
            alpha = await arena.agent("alpha")
            trades = await arena.trades("alpha")
            decisions = await arena.decisions("alpha")
            runs = await arena.session_runs()
        return report, alpha, trades, decisions, runs

    report, alpha, trades, decisions, runs = asyncio.run(run())
    result = by_agent(report)["alpha"]

    # Dry runs ignore exchange hours
    assert report.state == SessionState.COMPLETED
    assert report.dry_run
    assert result.outcome == AgentOutcome.TRADED
    assert result.executions[0].status == ExecutionStatus.VALIDATED
    assert result.trades_executed == 0
    assert alpha.cash == Decimal("10000")
    assert trades == [] and decisions == [] and runs == []
    assert [entry.external_id for entry in report.rankings] == ["alpha"]


def test_second_pass_in_same_cycle_is_skipped_unless_forced() -> None:
    async def run():
        outcomes = {"alpha": decision(buy(100)), "beta": TIMEOUT}
        async with Arena({k: BASELINE for k in outcomes}, outcomes) as arena:
            await arena.runner.run(now=MARKET_OPEN_UTC)
            again = await arena.runner.run(now=MARKET_OPEN_UTC)
            forced = await arena.runner.run(now=MARKET_OPEN_UTC, force=True)
            calls = {k: len(a.contexts) for k, a in arena.adapters.items()}
            trades = await arena.trades("alpha")
        return again, forced, calls, trades

    again, forced, calls, trades = asyncio.run(run())

    assert by_agent(again)["alpha"].outcome == AgentOutcome.SKIPPED_ALREADY_RAN
    # A failed decision does not count as having run
    assert by_agent(again)["beta"].outcome == AgentOutcome.FAILED
    assert again.agents_processed == 1
    assert by_agent(forced)["alpha"].outcome == AgentOutcome.TRADED
    assert calls == {"alpha": 2, "beta": 3}
    assert len(trades) == 2


def test_budget_exhaustion_skips_remaining_agents() -> None:
    ticks = iter(range(0, 10_000, 100))

    async def run():
        outcomes = {"alpha": HOLD, "beta": HOLD, "gamma": HOLD}
        async with Arena(
            {k: BASELINE for k in outcomes}, outcomes, timer=lambda: float(next(ticks))
        ) as arena:
            return await arena.runner.run(now=MARKET_OPEN_UTC, budget_seconds=150)

    report = asyncio.run(run())
    results = by_agent(report)

    assert results["alpha"].outcome == AgentOutcome.HOLD
    assert results["beta"].outcome == AgentOutcome.SKIPPED_BUDGET
    assert results["gamma"].outcome == AgentOutcome.SKIPPED_BUDGET
    assert report.agents_processed == 1
    assert report.state == SessionState.COMPLETED


def test_rejected_actions_are_reported_not_traded() -> None:
    async def run():
        outcomes = {"alpha": decision(buy(1000), buy(100, "9999"))}
        async with Arena({"alpha": BASELINE}, outcomes) as arena:
            report = await arena.runner.run(now=MARKET_OPEN_UTC)
            decisions = await arena.decisions("alpha")
        return report, decisions

    report, decisions = asyncio.run(run())
    result = by_agent(report)["alpha"]

    assert result.outcome == AgentOutcome.NO_VALID_ACTIONS
    assert not result.success
    assert [e.rejection for e in result.executions] == [
        RejectionReason.EXCEEDS_POSITION_CAP,
        RejectionReason.NO_PRICE,
    ]
    assert decisions[0].decision_type == "HOLD"


def test_single_agent_selection() -> None:
    async def run():
        outcomes = {"alpha": HOLD, "beta": HOLD}
        async with Arena({k: BASELINE for k in outcomes}, outcomes) as arena:
            only_beta = await arena.runner.run(agent_ref="beta", now=MARKET_OPEN_UTC)
            unknown = await arena.runner.run(agent_ref="omega", now=MARKET_OPEN_UTC, force=True)
        return only_beta, unknown

    only_beta, unknown = asyncio.run(run())

    assert [r.external_id for r in only_beta.results] == ["beta"]
    assert unknown.results == []
    assert any("omega" in e for e in unknown.errors)


def test_unexpected_adapter_error_is_contained() -> None:
    async def run():
        outcomes = {"alpha": RuntimeError("adapter exploded"), "beta": HOLD}
        async with Arena({k: BASELINE for k in outcomes}, outcomes) as arena:
            first = await arena.runner.run(now=MARKET_OPEN_UTC)
            recorded = await arena.decisions("alpha")
            # A FAILED record leaves the agent eligible for a retry this cycle
            second = await arena.runner.run(now=MARKET_OPEN_UTC)
        return first, recorded, second, arena.adapters["alpha"]

    report, recorded, second, adapter = asyncio.run(run())
    results = by_agent(report)

    assert results["alpha"].outcome == AgentOutcome.FAILED
    assert results["beta"].outcome == AgentOutcome.HOLD
    assert any("adapter exploded" in e for e in report.errors)

    (record,) = recorded
    assert record.decision_type == "FAILED"
    assert record.cycle_key == "2026-01-05T10"
    assert "adapter exploded" in record.error
    assert by_agent(second)["alpha"].outcome == AgentOutcome.FAILED
    assert len(adapter.contexts) == 2


class FailsOnCall:
    """Wraps the executor and raises a database error on the nth execute."""

    def __init__(self, executor, failing_call: int):
        self.executor = executor
        self.failing_call = failing_call
        self.calls = 0

    async def execute(self, *args, **kwargs):
        self.calls += 1
        if self.calls == self.failing_call:
            raise OperationalError("SELECT arena_positions", {}, Exception("database is locked"))
        return await self.executor.execute(*args, **kwargs)


def test_error_after_a_committed_trade_blocks_rerun_in_cycle() -> None:
    async def run():
        outcomes = {"alpha": decision(buy(100), buy(50, "5347"))}
        async with Arena({"alpha": BASELINE}, outcomes) as arena:
            arena.runner.executor = FailsOnCall(arena.runner.executor, failing_call=2)
            first = await arena.runner.run(now=MARKET_OPEN_UTC)
            second = await arena.runner.run(now=MARKET_OPEN_UTC)
            recorded = await arena.decisions("alpha")
            trades = await arena.trades("alpha")
        return first, second, recorded, trades

    first, second, recorded, trades = asyncio.run(run())

    alpha = by_agent(first)["alpha"]
    assert alpha.outcome == AgentOutcome.FAILED
    assert alpha.trades_executed == 1
    assert "OperationalError" in alpha.error
    assert first.trades_executed == 1

    (record,) = recorded
    assert record.decision_type == "TRADE"
    assert len(record.actions) == 2

    assert by_agent(second)["alpha"].outcome == AgentOutcome.SKIPPED_ALREADY_RAN
    assert [(t.side, t.instrument, float(t.quantity)) for t in trades] == [("BUY", "1155", 100.0)]


def test_agent_without_roster_entry_fails_as_not_configured() -> None:
    async def run():
        async with Arena({"alpha": BASELINE, "beta": BASELINE}, {"alpha": HOLD}) as arena:
            return await arena.runner.run(now=MARKET_OPEN_UTC)

    report = asyncio.run(run())
    beta = by_agent(report)["beta"]
    assert beta.outcome == AgentOutcome.FAILED
    assert beta.error.startswith("not_configured")


def test_situational_awareness_brief_lists_competitors() -> None:
    async def run():
        modes = {
            "alpha": CompetitionMode.SITUATIONAL_AWARENESS,
            "beta": CompetitionMode.SITUATIONAL_AWARENESS,
            "gamma": BASELINE,
        }
        outcomes = {k: HOLD for k in modes}
        async with Arena(modes, outcomes) as arena:
            await arena.runner.run(now=MARKET_OPEN_UTC)
            return {k: a.contexts[0] for k, a in arena.adapters.items()}

    contexts = asyncio.run(run())

    assert "## COMPETITORS (same mode, ranked within the mode)" in contexts["alpha"]
    assert "Beta" in contexts["alpha"].split("## COMPETITORS")[1]
    assert "Gamma" not in contexts["alpha"].split("## COMPETITORS")[1].split("##")[0]
    assert "COMPETITORS" not in contexts["gamma"]
    assert "1155 (Maybank)" in contexts["gamma"]


def test_competitor_ranks_count_only_the_same_mode() -> None:
    async def run():
        modes = {
            "alpha": CompetitionMode.SITUATIONAL_AWARENESS,
            "beta": CompetitionMode.SITUATIONAL_AWARENESS,
            "gamma": BASELINE,
            "delta": BASELINE,
        }
        values = {"gamma": "12000", "delta": "11000", "beta": "10500", "alpha": "10000"}
        outcomes = {k: HOLD for k in modes}
        async with Arena(modes, outcomes) as arena:
            async with arena.factory() as db:
                for external_id, value in values.items():
                    agent = await ledger_store.get_agent(db, arena.agents[external_id].id)
                    agent.portfolio_value = Decimal(value)
                await db.commit()
            await arena.runner.run(now=MARKET_OPEN_UTC)
            return arena.adapters["alpha"].contexts[0]

    context = asyncio.run(run())
    competitors = context.split("## COMPETITORS")[1].split("##")[0]

    # Beta is third overall but leads the situational-awareness field
    assert "#1 Beta" in competitors
    assert "#3" not in competitors


def test_session_state_machine() -> None:
    report = SessionReport(
        session_id="00000000-0000-0000-0000-000000000001",
        cycle_key="2026-01-05T10",
        timestamp=MARKET_OPEN_UTC,
        state=SessionState.GATED,
        gate=GateOutcome.OPEN,
    )
    transition(report, SessionState.RUNNING)
    transition(report, SessionState.COMPLETED)
    assert report.state == SessionState.COMPLETED

    with pytest.raises(SessionTransitionError):
        transition(report, SessionState.RUNNING)

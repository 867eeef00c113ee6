"""
Session Orchestrator

Drives one trading pass: gate on the competition window and exchange hours,
price the universe, then for every active agent build its brief, ask its
provider for a decision and push each proposed action through the executor.
Agents are isolated from each other; one agent failing never stops the pass.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

import logfire
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.config import Settings
from arena.errors import LedgerConflictError, LedgerWriteError, SessionTransitionError
from arena.llm_providers import DEFAULT_ROSTER, AgentModelConfig, estimate_cost
from arena.models import Agent, DecisionRecord, Position, SessionRun
from arena.models.base import utcnow
from arena.providers.adapter import DecisionAdapter
from arena.providers.router import build_provider
from arena.retry import RetryPolicy
from arena.schemas.common import AgentStatus
from arena.schemas.decision import DecisionFailure, DecisionSuccess, FailureKind
from arena.schemas.leaderboard import LeaderboardEntry
from arena.schemas.market import InstrumentProfile, Quote, ScreenedInstrument
from arena.schemas.session import (
    AgentOutcome,
    AgentSessionResult,
    GateOutcome,
    SessionReport,
    SessionState,
)
from arena.schemas.trading import ExecutionStatus
from arena.services.context_builder import (
    AgentBrief,
    CompetitorView,
    build_context,
    holding_views,
    trade_views,
)
from arena.services.leaderboard import leaderboard_service, standing_key
from arena.services.ledger import ledger_store
from arena.services.market_calendar import MarketCalendar
from arena.services.prompts import build_system_prompt
from arena.services.quotes import QuoteResolver
from arena.services.rules import ModeRules, rules_for
from arena.services.screening import MarketHealth, screen_universe
from arena.services.trade_executor import TradeExecutor, TradingLimits

logger = logging.getLogger(__name__)

TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.GATED: {SessionState.RUNNING, SessionState.SKIPPED},
    SessionState.RUNNING: {SessionState.COMPLETED},
    SessionState.COMPLETED: set(),
    SessionState.SKIPPED: set(),
}


def transition(report: SessionReport, target: SessionState) -> None:
    if target not in TRANSITIONS[report.state]:
        raise SessionTransitionError(f"cannot move session from {report.state} to {target}")
    report.state = target


@dataclass
class SessionContext:
    """Everything loaded once per pass and shared by the per-agent runs."""

    session_id: UUID
    cycle_key: str
    now: datetime
    day_start: datetime
    dry_run: bool
    force: bool
    limits: TradingLimits
    initial_capital: float
    fee_rate: float
    min_trade_value: float
    max_position_pct: float
    days_elapsed: int
    days_remaining: int
    quotes: dict[str, Quote] = field(default_factory=dict)
    candidates: list[ScreenedInstrument] = field(default_factory=list)
    health: Optional[MarketHealth] = None
    standings: list[Agent] = field(default_factory=list)
    positions: dict[UUID, list[Position]] = field(default_factory=dict)
    stocks_analyzed: int = 0


class SessionRunner:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        quote_resolver: QuoteResolver,
        profiles: Optional[list[InstrumentProfile]] = None,
        roster: Optional[list[AgentModelConfig]] = None,
        adapter_factory: Optional[Callable[[AgentModelConfig], DecisionAdapter]] = None,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.quote_resolver = quote_resolver
        self.profiles = profiles or []
        self.roster = {entry.external_id: entry for entry in (roster or DEFAULT_ROSTER)}
        self.adapter_factory = adapter_factory or self._default_adapter
        self.clock = clock
        self.timer = timer
        self.calendar = MarketCalendar(settings.session)
        self.executor = TradeExecutor(RetryPolicy.from_config(settings.retry))

    def _default_adapter(self, entry: AgentModelConfig) -> DecisionAdapter:
        provider = build_provider(entry, self.settings)
        return DecisionAdapter(provider, self.settings.session.provider_timeout_seconds)

    async def run(
        self,
        agent_ref: Optional[str] = None,
        dry_run: bool = False,
        force: bool = False,
        budget_seconds: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> SessionReport:
        """
        Run one session pass and return its report.

        Args:
            agent_ref: Restrict the pass to one agent (external id or UUID)
            dry_run: Validate actions without writing anything
            force: Run agents that already decided in this cycle
            budget_seconds: Wall-clock budget; defaults to the session config
            now: Evaluation time; defaults to the clock
        """
        now = now or self.clock()
        started = self.timer()
        budget = budget_seconds if budget_seconds is not None else self.settings.session.budget_seconds
        cycle_key = self.calendar.cycle_key(now)

        report = SessionReport(
            session_id=uuid4(),
            cycle_key=cycle_key,
            timestamp=now,
            state=SessionState.GATED,
            gate=GateOutcome.OPEN,
            market_open=self.calendar.is_market_open(now),
            dry_run=dry_run,
        )

        with logfire.span("session.run", cycle_key=cycle_key, dry_run=dry_run, agent=agent_ref):
            async with self.session_factory() as db:
                competition = await ledger_store.get_competition(db)
                check_hours = not dry_run or self.settings.session.gate_dry_runs
                report.gate = self.calendar.gate(competition, now, check_market_hours=check_hours)
                report.competition_active = self.calendar.gate(
                    competition, now, check_market_hours=False
                ) == GateOutcome.OPEN

                if report.gate != GateOutcome.OPEN:
                    transition(report, SessionState.SKIPPED)
                    report.finished_at = self.clock()
                    logger.info(f"Session {cycle_key} skipped: {report.gate}")
                    logfire.info("Session skipped", cycle_key=cycle_key, gate=report.gate.value)
                    if not dry_run:
                        await self._persist_run(db, report)
                    return report

                days_elapsed, days_remaining = self.calendar.competition_days(competition, now)
                ctx = SessionContext(
                    session_id=report.session_id,
                    cycle_key=cycle_key,
                    now=now,
                    day_start=self.calendar.day_start(now),
                    dry_run=dry_run,
                    force=force,
                    limits=TradingLimits.from_competition(competition),
                    initial_capital=float(competition.initial_capital),
                    fee_rate=float(competition.fee_rate),
                    min_trade_value=float(competition.min_trade_value),
                    max_position_pct=float(competition.max_position_pct),
                    days_elapsed=days_elapsed,
                    days_remaining=days_remaining,
                )

                agents = await ledger_store.list_agents(db, status=AgentStatus.ACTIVE)
                if agent_ref:
                    selected = await ledger_store.find_agent(db, agent_ref)
                    if selected is None or selected.status != AgentStatus.ACTIVE.value:
                        report.errors.append(f"No active agent matches {agent_ref!r}")
                        agents = []
                    else:
                        agents = [selected]

                ctx.standings = sorted(await ledger_store.list_agents(db), key=standing_key)
                ctx.positions = await ledger_store.list_all_positions(db)
                held = await ledger_store.held_instruments(db)

            transition(report, SessionState.RUNNING)
            logfire.info("Session running", cycle_key=cycle_key, agents=len(agents))

            with logfire.span("session.market_data"):
                ctx.quotes = await self.quote_resolver.get_quotes_batch(
                    [p.code for p in self.profiles] + held
                )
                screening = screen_universe(self.profiles, ctx.quotes)
                ctx.candidates = screening.ranked[: self.settings.session.candidate_count]
                ctx.health = screening.health
                ctx.stocks_analyzed = screening.total_analyzed

            for agent in agents:
                agent_id, external_id = agent.id, agent.external_id
                if self.timer() - started >= budget:
                    logger.warning(f"{external_id}: session budget exhausted, skipping")
                    report.results.append(
                        self._bare_result(agent, AgentOutcome.SKIPPED_BUDGET, "budget exhausted")
                    )
                    continue

                try:
                    result = await self._run_agent(agent_id, ctx, report, started, budget)
                except Exception as e:
                    logger.error(f"{external_id}: agent run failed: {e}", exc_info=True)
                    logfire.error("Agent run failed", agent=external_id, error=str(e))
                    report.errors.append(f"{external_id}: {type(e).__name__}: {e}")
                    result = self._bare_result(agent, AgentOutcome.FAILED, str(e))
                report.results.append(result)

            report.rankings = await self._rank(ctx, report)
            ranks = {entry.agent_id: entry.rank for entry in report.rankings}
            for result in report.results:
                result.rank = ranks.get(result.agent_id)

            self._aggregate(report)
            transition(report, SessionState.COMPLETED)
            report.finished_at = self.clock()

            if not dry_run:
                async with self.session_factory() as db:
                    await self._persist_run(db, report)

            logfire.info(
                "Session completed",
                cycle_key=cycle_key,
                agents_processed=report.agents_processed,
                trades_executed=report.trades_executed,
                tokens=report.total_tokens_used,
                alerts=len(report.alerts),
            )
            return report

    def _bare_result(
        self, agent: Agent, outcome: AgentOutcome, error: Optional[str] = None
    ) -> AgentSessionResult:
        return AgentSessionResult(
            agent_id=agent.id,
            external_id=agent.external_id,
            display_name=agent.display_name,
            mode=agent.mode,
            outcome=outcome,
            error=error,
        )

    def _competitors(self, agent: Agent, ctx: SessionContext) -> list[CompetitorView]:
        # Ranked among the agents sharing this mode
        same_mode = [a for a in ctx.standings if a.mode == agent.mode]
        views = []
        for rank, other in enumerate(same_mode, 1):
            if other.id == agent.id:
                continue
            value = float(other.portfolio_value)
            holdings = sorted(
                ctx.positions.get(other.id, []),
                key=lambda p: p.quantity * p.last_price,
                reverse=True,
            )
            views.append(
                CompetitorView(
                    display_name=other.display_name,
                    rank=rank,
                    portfolio_value=value,
                    pnl_pct=other.pnl_pct,
                    cash_pct=float(other.cash) / value * 100 if value else 0.0,
                    top_holdings=[
                        (p.instrument, float(p.quantity * p.last_price) / value * 100 if value else 0.0)
                        for p in holdings[:3]
                    ],
                )
            )
            if len(views) >= self.settings.session.competitor_count:
                break
        return views

    async def _build_brief(
        self, db: AsyncSession, agent: Agent, ctx: SessionContext
    ) -> AgentBrief:
        rules = rules_for(agent.mode)
        positions = await ledger_store.list_positions(db, agent.id)
        trades = await ledger_store.list_trades(
            db, agent.id, limit=self.settings.session.recent_trades_window
        )

        realized_today = None
        if rules.max_daily_loss_pct is not None:
            realized_today = float(
                await ledger_store.realized_pnl_since(db, agent.id, ctx.day_start)
            )

        rank = next((i for i, a in enumerate(ctx.standings, 1) if a.id == agent.id), None)
        holdings = holding_views(positions, ctx.quotes)
        cash = float(agent.cash)

        return AgentBrief(
            display_name=agent.display_name,
            rules=rules,
            cash=cash,
            portfolio_value=cash + sum(h.market_value for h in holdings),
            initial_capital=float(agent.initial_capital),
            realized_pnl=float(agent.realized_pnl),
            total_trades=agent.total_trades,
            winning_trades=agent.winning_trades,
            rank=rank,
            agent_count=len(ctx.standings),
            days_elapsed=ctx.days_elapsed,
            days_remaining=ctx.days_remaining,
            holdings=holdings,
            recent_trades=trade_views(trades),
            candidates=ctx.candidates,
            competitors=self._competitors(agent, ctx) if rules.can_see_competitors else [],
            health=ctx.health,
            realized_pnl_today=realized_today,
            timestamp=ctx.now,
        )

    async def _price_for(self, instrument: str, ctx: SessionContext) -> Optional[float]:
        quote = ctx.quotes.get(instrument)
        if quote is None and instrument:
            quote = await self.quote_resolver.get_quote(instrument)
            if quote is not None:
                ctx.quotes[instrument] = quote
        return quote.price if quote else None

    async def _run_agent(
        self,
        agent_id: UUID,
        ctx: SessionContext,
        report: SessionReport,
        started: float,
        budget: float,
    ) -> AgentSessionResult:
        async with self.session_factory() as db:
            agent = await ledger_store.get_agent(db, agent_id, fresh=True)
            external_id = agent.external_id
            result = self._bare_result(agent, AgentOutcome.FAILED)

            with logfire.span("session.agent", agent=external_id, mode=agent.mode):
                if not ctx.force and not ctx.dry_run:
                    if await ledger_store.has_decision_for_cycle(db, agent_id, ctx.cycle_key):
                        logger.info(f"{external_id}: already decided in {ctx.cycle_key}, skipping")
                        result.outcome = AgentOutcome.SKIPPED_ALREADY_RAN
                        return result

                outcome: Optional[DecisionSuccess | DecisionFailure] = None
                try:
                    rules = rules_for(agent.mode)
                    brief = await self._build_brief(db, agent, ctx)
                    context = build_context(brief)
                    system_prompt = build_system_prompt(
                        agent.display_name,
                        rules,
                        initial_capital=ctx.initial_capital,
                        fee_rate=ctx.fee_rate,
                        min_trade_value=ctx.min_trade_value,
                        max_position_pct=ctx.max_position_pct,
                    )

                    entry = self.roster.get(external_id)
                    if entry is None:
                        outcome = DecisionFailure(
                            reason=FailureKind.NOT_CONFIGURED,
                            message=f"no roster entry for {external_id}",
                        )
                    else:
                        outcome = await self.adapter_factory(entry).get_decision(
                            system_prompt, context
                        )

                    result.tokens_used = outcome.tokens_used
                    result.latency_ms = outcome.latency_ms
                    if entry is not None:
                        result.estimated_cost = estimate_cost(
                            entry.cost_per_1k_calls, outcome.tokens_used
                        )

                    if isinstance(outcome, DecisionFailure):
                        result.error = f"{outcome.reason}: {outcome.message}"
                        logfire.warn(
                            "Agent decision failed",
                            agent=external_id,
                            reason=outcome.reason.value,
                            message=outcome.message,
                        )
                        await self._record_decision(db, agent_id, ctx, outcome, "FAILED")
                        return result

                    await self._execute_actions(
                        db, agent_id, external_id, rules, outcome, ctx, result, report, started, budget
                    )

                    trade_actions = [a for a in outcome.decision.actions if not a.is_hold]
                    if not trade_actions:
                        result.outcome = AgentOutcome.HOLD
                    elif result.trades_executed or any(
                        e.status == ExecutionStatus.VALIDATED for e in result.executions
                    ):
                        result.outcome = AgentOutcome.TRADED
                    else:
                        result.outcome = AgentOutcome.NO_VALID_ACTIONS

                    result.sentiment = outcome.decision.sentiment.value
                    result.summary = outcome.decision.summary
                    decision_type = "TRADE" if result.trades_executed else "HOLD"
                    await self._record_decision(db, agent_id, ctx, outcome, decision_type)
                    return result

                except Exception as e:
                    await db.rollback()
                    error = f"{type(e).__name__}: {e}"
                    logger.error(f"{external_id}: agent run failed: {e}", exc_info=True)
                    logfire.error(
                        "Agent run failed",
                        agent=external_id,
                        error=str(e),
                        trades_executed=result.trades_executed,
                    )
                    report.errors.append(f"{external_id}: {error}")
                    result.outcome = AgentOutcome.FAILED
                    result.error = error
                    await self._record_interrupted(agent_id, ctx, outcome, result, error)
                    return result

    async def _execute_actions(
        self,
        db: AsyncSession,
        agent_id: UUID,
        external_id: str,
        rules: ModeRules,
        outcome: DecisionSuccess,
        ctx: SessionContext,
        result: AgentSessionResult,
        report: SessionReport,
        started: float,
        budget: float,
    ) -> None:
        for index, action in enumerate(outcome.decision.actions):
            if action.is_hold:
                continue
            if index and self.timer() - started >= budget:
                logger.warning(f"{external_id}: budget exhausted before {action.instrument}")
                result.error = "budget exhausted before all actions ran"
                break

            price = await self._price_for(action.instrument, ctx)
            try:
                execution = await self.executor.execute(
                    db,
                    agent_id,
                    action,
                    price,
                    ctx.limits,
                    rules,
                    session_id=ctx.session_id,
                    dry_run=ctx.dry_run,
                    day_start=ctx.day_start,
                )
            except LedgerWriteError as e:
                report.alerts.append(str(e))
                result.error = str(e)
                break

            result.executions.append(execution)
            if execution.executed:
                result.trades_executed += 1

    async def _record_decision(
        self,
        db: AsyncSession,
        agent_id: UUID,
        ctx: SessionContext,
        outcome: DecisionSuccess | DecisionFailure,
        decision_type: str,
        error: Optional[str] = None,
    ) -> None:
        if ctx.dry_run:
            return

        record = DecisionRecord(
            agent_id=agent_id,
            session_id=ctx.session_id,
            cycle_key=ctx.cycle_key,
            decision_type=decision_type,
            stocks_analyzed=ctx.stocks_analyzed,
            raw_response=outcome.raw_response,
            tokens_used=outcome.tokens_used,
            latency_ms=outcome.latency_ms,
        )
        if isinstance(outcome, DecisionSuccess):
            decision = outcome.decision
            record.sentiment = decision.sentiment.value
            record.summary = decision.summary
            record.actions = [a.model_dump(mode="json", by_alias=True) for a in decision.actions]
            record.top_picks = decision.top_picks
            record.avoid_list = decision.avoid_list
            record.error = error
        else:
            record.summary = ""
            record.actions = []
            record.error = error or f"{outcome.reason}: {outcome.message}"

        await ledger_store.add_decision(db, record)

    async def _record_interrupted(
        self,
        agent_id: UUID,
        ctx: SessionContext,
        outcome: Optional[DecisionSuccess | DecisionFailure],
        result: AgentSessionResult,
        error: str,
    ) -> None:
        """
        Record a decision for an agent whose run raised part way through.

        Trades already committed in this run make it a TRADE record, which
        blocks a re-run in the same cycle; otherwise it is FAILED and retryable.
        """
        if not isinstance(outcome, DecisionSuccess):
            outcome = DecisionFailure(
                reason=FailureKind.INTERRUPTED,
                message=error,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
            )
        decision_type = "TRADE" if result.trades_executed else "FAILED"
        async with self.session_factory() as db:
            await self._record_decision(db, agent_id, ctx, outcome, decision_type, error=error)

    async def _rank(self, ctx: SessionContext, report: SessionReport) -> list[LeaderboardEntry]:
        async with self.session_factory() as db:
            if not ctx.dry_run:
                try:
                    await leaderboard_service.revalue_portfolios(db, ctx.quotes)
                    await leaderboard_service.recompute_ranks(db)
                except LedgerConflictError as e:
                    logger.warning(f"Rank update skipped: {e}")
                    report.errors.append(str(e))
            return await leaderboard_service.get_leaderboard(db, include_metrics=False)

    def _aggregate(self, report: SessionReport) -> None:
        skipped = (AgentOutcome.SKIPPED_ALREADY_RAN, AgentOutcome.SKIPPED_BUDGET)
        report.agents_processed = sum(1 for r in report.results if r.outcome not in skipped)
        report.trades_executed = sum(r.trades_executed for r in report.results)
        report.total_tokens_used = sum(r.tokens_used for r in report.results)
        report.total_latency_ms = sum(r.latency_ms for r in report.results)
        report.estimated_cost = sum(r.estimated_cost for r in report.results)

    async def _persist_run(self, db: AsyncSession, report: SessionReport) -> None:
        run = SessionRun(
            id=report.session_id,
            cycle_key=report.cycle_key,
            state=report.state.value,
            gate=report.gate.value,
            dry_run=report.dry_run,
            started_at=report.timestamp,
            finished_at=report.finished_at,
            agents_processed=report.agents_processed,
            trades_executed=report.trades_executed,
            tokens_used=report.total_tokens_used,
            report=report.model_dump(mode="json"),
        )
        await ledger_store.add_session_run(db, run)

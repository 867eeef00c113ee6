"""Ledger Store: all persisted reads and writes for the engine."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import CompetitionConfig
from arena.llm_providers import AgentModelConfig
from arena.models import (
    Agent,
    Competition,
    DailySnapshot,
    DecisionRecord,
    Position,
    SessionRun,
    TradeRecord,
)
from arena.schemas.common import AgentStatus, CompetitionMode

logger = logging.getLogger(__name__)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LedgerStore:
    """
    CRUD-style access to agents, positions, trades, snapshots and config.

    Reads that feed a validate-then-write sequence pass ``fresh=True`` so the
    session's identity map is overwritten with the committed row, including
    its version counter.
    """

    # Competition

    async def get_competition(self, db: AsyncSession) -> Optional[Competition]:
        result = await db.execute(
            select(Competition).order_by(Competition.created_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def ensure_competition(
        self, db: AsyncSession, defaults: CompetitionConfig
    ) -> Competition:
        """Return the competition row, creating it from defaults if absent."""
        competition = await self.get_competition(db)
        if competition:
            return competition

        competition = Competition(
            name=defaults.name,
            start_at=defaults.start_at,
            end_at=defaults.end_at,
            initial_capital=to_decimal(defaults.initial_capital),
            fee_rate=to_decimal(defaults.fee_rate),
            min_trade_value=to_decimal(defaults.min_trade_value),
            max_position_pct=to_decimal(defaults.max_position_pct),
            is_active=defaults.is_active,
        )
        db.add(competition)
        await db.commit()
        logger.info(f"Created competition {competition.name}")
        return competition

    async def set_competition_active(
        self, db: AsyncSession, is_active: bool
    ) -> Optional[Competition]:
        competition = await self.get_competition(db)
        if competition:
            competition.is_active = is_active
            await db.commit()
        return competition

    # Agents

    async def seed_agents(
        self,
        db: AsyncSession,
        roster: Iterable[AgentModelConfig],
        initial_capital: Decimal,
        modes: dict[str, CompetitionMode] | None = None,
    ) -> list[Agent]:
        """Create or update roster agents. Capital and stats are never reset."""
        modes = modes or {}
        agents = []

        for entry in roster:
            existing = await self.get_agent_by_external_id(db, entry.external_id)

            if existing:
                existing.display_name = entry.display_name
                existing.provider = entry.provider.value
                existing.model_name = str(entry.model)
                existing.color = entry.color
                existing.cost_per_1k_calls = to_decimal(entry.cost_per_1k_calls)
                agents.append(existing)
            else:
                agent = Agent(
                    external_id=entry.external_id,
                    display_name=entry.display_name,
                    provider=entry.provider.value,
                    model_name=str(entry.model),
                    color=entry.color,
                    cost_per_1k_calls=to_decimal(entry.cost_per_1k_calls),
                    status=AgentStatus.ACTIVE.value,
                    mode=modes.get(entry.external_id, CompetitionMode.NEW_BASELINE).value,
                    initial_capital=initial_capital,
                    cash=initial_capital,
                    realized_pnl=Decimal("0"),
                    portfolio_value=initial_capital,
                    total_trades=0,
                    winning_trades=0,
                )
                db.add(agent)
                agents.append(agent)

        await db.commit()
        logger.info(f"Seeded {len(agents)} agents")
        return agents

    async def get_agent(
        self, db: AsyncSession, agent_id: UUID, fresh: bool = False
    ) -> Optional[Agent]:
        query = select(Agent).where(Agent.id == agent_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_agent_by_external_id(
        self, db: AsyncSession, external_id: str
    ) -> Optional[Agent]:
        result = await db.execute(select(Agent).where(Agent.external_id == external_id))
        return result.scalar_one_or_none()

    async def find_agent(self, db: AsyncSession, ref: str) -> Optional[Agent]:
        """Resolve an agent by external id or UUID string."""
        agent = await self.get_agent_by_external_id(db, ref)
        if agent:
            return agent
        try:
            return await self.get_agent(db, UUID(ref))
        except ValueError:
            return None

    async def list_agents(
        self, db: AsyncSession, status: Optional[AgentStatus] = None, fresh: bool = False
    ) -> list[Agent]:
        query = select(Agent).order_by(Agent.external_id)
        if status is not None:
            query = query.where(Agent.status == status.value)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def set_agent_status(
        self, db: AsyncSession, agent_id: UUID, status: AgentStatus
    ) -> Agent:
        agent = await self.get_agent(db, agent_id)
        if not agent:
            raise ValueError(f"Agent {agent_id} not found")
        agent.status = status.value
        await db.commit()
        return agent

    # Positions

    async def get_position(
        self, db: AsyncSession, agent_id: UUID, instrument: str, fresh: bool = False
    ) -> Optional[Position]:
        query = select(Position).where(
            Position.agent_id == agent_id, Position.instrument == instrument
        )
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_positions(
        self, db: AsyncSession, agent_id: UUID, fresh: bool = False
    ) -> list[Position]:
        query = (
            select(Position)
            .where(Position.agent_id == agent_id)
            .order_by(Position.instrument)
        )
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_all_positions(self, db: AsyncSession) -> dict[UUID, list[Position]]:
        result = await db.execute(select(Position).order_by(Position.instrument))
        grouped: dict[UUID, list[Position]] = {}
        for position in result.scalars().all():
            grouped.setdefault(position.agent_id, []).append(position)
        return grouped

    async def held_instruments(self, db: AsyncSession) -> list[str]:
        result = await db.execute(select(Position.instrument).distinct())
        return sorted(result.scalars().all())

    # Trades (append-only)

    def append_trade(self, db: AsyncSession, trade: TradeRecord) -> TradeRecord:
        """Stage a trade record; the caller commits it with the position change."""
        db.add(trade)
        return trade

    async def list_trades(
        self,
        db: AsyncSession,
        agent_id: UUID,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> list[TradeRecord]:
        order = TradeRecord.executed_at.desc() if newest_first else TradeRecord.executed_at
        query = select(TradeRecord).where(TradeRecord.agent_id == agent_id).order_by(order)
        if limit is not None:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def realized_pnl_since(
        self, db: AsyncSession, agent_id: UUID, since: datetime
    ) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(TradeRecord.realized_pnl), 0))
            .where(TradeRecord.agent_id == agent_id)
            .where(TradeRecord.executed_at >= since)
        )
        return to_decimal(result.scalar_one())

    # Decisions (append-only)

    async def add_decision(self, db: AsyncSession, record: DecisionRecord) -> DecisionRecord:
        db.add(record)
        await db.commit()
        return record

    async def has_decision_for_cycle(
        self, db: AsyncSession, agent_id: UUID, cycle_key: str
    ) -> bool:
        result = await db.execute(
            select(func.count())
            .select_from(DecisionRecord)
            .where(DecisionRecord.agent_id == agent_id)
            .where(DecisionRecord.cycle_key == cycle_key)
            .where(DecisionRecord.decision_type != "FAILED")
        )
        return result.scalar_one() > 0

    async def list_decisions(
        self, db: AsyncSession, agent_id: UUID, limit: int = 20
    ) -> list[DecisionRecord]:
        result = await db.execute(
            select(DecisionRecord)
            .where(DecisionRecord.agent_id == agent_id)
            .order_by(DecisionRecord.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # Snapshots

    async def get_snapshot(
        self, db: AsyncSession, agent_id: UUID, snapshot_date: date
    ) -> Optional[DailySnapshot]:
        result = await db.execute(
            select(DailySnapshot)
            .where(DailySnapshot.agent_id == agent_id)
            .where(DailySnapshot.snapshot_date == snapshot_date)
        )
        return result.scalar_one_or_none()

    async def latest_snapshot_before(
        self, db: AsyncSession, agent_id: UUID, snapshot_date: date
    ) -> Optional[DailySnapshot]:
        result = await db.execute(
            select(DailySnapshot)
            .where(DailySnapshot.agent_id == agent_id)
            .where(DailySnapshot.snapshot_date < snapshot_date)
            .order_by(DailySnapshot.snapshot_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_snapshots(self, db: AsyncSession, agent_id: UUID) -> list[DailySnapshot]:
        result = await db.execute(
            select(DailySnapshot)
            .where(DailySnapshot.agent_id == agent_id)
            .order_by(DailySnapshot.snapshot_date)
        )
        return list(result.scalars().all())

    async def has_snapshots_for(self, db: AsyncSession, snapshot_date: date) -> bool:
        result = await db.execute(
            select(func.count())
            .select_from(DailySnapshot)
            .where(DailySnapshot.snapshot_date == snapshot_date)
        )
        return result.scalar_one() > 0

    # Session runs

    async def add_session_run(self, db: AsyncSession, run: SessionRun) -> SessionRun:
        db.add(run)
        await db.commit()
        return run

    async def list_session_runs(self, db: AsyncSession, limit: int = 20) -> list[SessionRun]:
        result = await db.execute(
            select(SessionRun).order_by(SessionRun.started_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


# Singleton instance
ledger_store = LedgerStore()

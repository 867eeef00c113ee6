"""Portfolio revaluation, rank recomputation and the leaderboard view."""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from arena.config import MetricsConfig
from arena.errors import LedgerConflictError
from arena.models import Agent, Position
from arena.schemas.leaderboard import LeaderboardEntry
from arena.schemas.market import Quote
from arena.services.ledger import ledger_store, to_decimal
from arena.services.metrics import compute_agent_metrics

logger = logging.getLogger(__name__)


def standing_key(agent: Agent) -> tuple:
    """Portfolio value descending, then external id and UUID for a total order."""
    return (-to_decimal(agent.portfolio_value), agent.external_id, str(agent.id))


def rank_agents(agents: Sequence[Agent]) -> list[tuple[int, Agent]]:
    return list(enumerate(sorted(agents, key=standing_key), 1))


def portfolio_value(cash: Decimal, positions: Sequence[Position]) -> Decimal:
    return cash + sum((p.quantity * p.last_price for p in positions), Decimal("0"))


class LeaderboardService:
    """
    Derives standings from the ledger.

    Ranks are recomputed from scratch every time; nothing is patched
    incrementally.
    """

    async def revalue_portfolios(
        self, db: AsyncSession, quotes: dict[str, Quote]
    ) -> list[Agent]:
        """Mark every position to the latest quote and refresh portfolio values."""
        agents = await ledger_store.list_agents(db, fresh=True)
        grouped = await ledger_store.list_all_positions(db)

        for agent in agents:
            positions = grouped.get(agent.id, [])
            for position in positions:
                quote = quotes.get(position.instrument)
                if quote is not None and quote.price > 0:
                    position.last_price = to_decimal(quote.price)
            agent.portfolio_value = portfolio_value(agent.cash, positions)

        await self._commit(db, "revaluation")
        return agents

    async def recompute_ranks(self, db: AsyncSession) -> list[Agent]:
        agents = await ledger_store.list_agents(db, fresh=True)
        for rank, agent in rank_agents(agents):
            agent.rank = rank
        await self._commit(db, "rank update")
        logger.info(f"Recomputed ranks for {len(agents)} agents")
        return [agent for _, agent in rank_agents(agents)]

    async def _commit(self, db: AsyncSession, what: str) -> None:
        try:
            await db.commit()
        except (StaleDataError, IntegrityError) as e:
            await db.rollback()
            raise LedgerConflictError(f"{what} raced a concurrent trade: {e}") from e

    async def get_leaderboard(
        self,
        db: AsyncSession,
        include_metrics: bool = True,
        metrics_config: Optional[MetricsConfig] = None,
    ) -> list[LeaderboardEntry]:
        agents = await ledger_store.list_agents(db)
        entries = []

        for rank, agent in rank_agents(agents):
            metrics = None
            if include_metrics:
                trades = await ledger_store.list_trades(db, agent.id, newest_first=False)
                snapshots = await ledger_store.list_snapshots(db, agent.id)
                positions = await ledger_store.list_positions(db, agent.id)
                metrics = compute_agent_metrics(
                    agent, trades, snapshots, metrics_config, positions=positions
                )

            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    agent_id=agent.id,
                    external_id=agent.external_id,
                    display_name=agent.display_name,
                    mode=agent.mode,
                    status=agent.status,
                    portfolio_value=float(agent.portfolio_value),
                    cash=float(agent.cash),
                    pnl_pct=agent.pnl_pct,
                    metrics=metrics,
                )
            )

        return entries


leaderboard_service = LeaderboardService()

"""Daily portfolio snapshots, the value series behind the risk metrics."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import logfire
from sqlalchemy.ext.asyncio import AsyncSession

from arena.models import DailySnapshot
from arena.schemas.common import AgentStatus
from arena.services.ledger import ledger_store

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _pct(numerator: Decimal, denominator: Decimal) -> Decimal:
    if not denominator:
        return ZERO
    return (numerator / denominator * HUNDRED).quantize(Decimal("0.0001"))


async def take_daily_snapshots(db: AsyncSession, snapshot_date: date) -> list[DailySnapshot]:
    """
    Write one snapshot per active agent for ``snapshot_date``.

    Skipped entirely when the competition is inactive or the date already has
    snapshots. Portfolio values are taken as last revalued by a session.
    """
    competition = await ledger_store.get_competition(db)
    if competition is None or not competition.is_active:
        logger.info("Competition inactive, skipping daily snapshot")
        return []

    if await ledger_store.has_snapshots_for(db, snapshot_date):
        logger.info(f"Snapshots for {snapshot_date} already exist, skipping")
        return []

    agents = await ledger_store.list_agents(db, status=AgentStatus.ACTIVE)
    snapshots = []

    for agent in agents:
        value = agent.portfolio_value
        previous: Optional[DailySnapshot] = await ledger_store.latest_snapshot_before(
            db, agent.id, snapshot_date
        )
        baseline = previous.portfolio_value if previous else agent.initial_capital
        change = value - baseline

        snapshot = DailySnapshot(
            agent_id=agent.id,
            snapshot_date=snapshot_date,
            portfolio_value=value,
            cash=agent.cash,
            holdings_value=value - agent.cash,
            daily_change=change,
            daily_change_pct=_pct(change, baseline),
            cumulative_return_pct=_pct(value - agent.initial_capital, agent.initial_capital),
        )
        db.add(snapshot)
        snapshots.append(snapshot)

    await db.commit()
    logger.info(f"Saved {len(snapshots)} daily snapshots for {snapshot_date}")
    logfire.info("Daily snapshots saved", date=snapshot_date.isoformat(), agents=len(snapshots))
    return snapshots

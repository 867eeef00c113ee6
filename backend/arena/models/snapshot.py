"""Daily portfolio snapshot database model."""

from sqlalchemy import Column, Date, ForeignKey, Numeric, UniqueConstraint, Uuid

from arena.database.base import Base
from arena.models.agent import MONEY
from arena.models.base import TimestampMixin, UUIDMixin


class DailySnapshot(Base, UUIDMixin, TimestampMixin):
    """One row per agent per calendar day, the time series behind risk metrics."""

    __tablename__ = "arena_daily_snapshots"

    agent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("arena_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    snapshot_date = Column(Date, nullable=False)

    portfolio_value = Column(MONEY, nullable=False)
    cash = Column(MONEY, nullable=False)
    holdings_value = Column(MONEY, nullable=False)
    daily_change = Column(MONEY, nullable=False)
    daily_change_pct = Column(Numeric(10, 4), nullable=False)
    cumulative_return_pct = Column(Numeric(10, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("agent_id", "snapshot_date", name="uq_snapshot_agent_date"),
    )

    def __repr__(self) -> str:
        return f"<DailySnapshot {self.snapshot_date} {self.portfolio_value}>"

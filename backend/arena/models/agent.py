"""Competing agent database model."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String

from arena.database.base import Base
from arena.models.base import TimestampMixin, UUIDMixin

MONEY = Numeric(20, 6)


class Agent(Base, UUIDMixin, TimestampMixin):
    """One competitor: capital, counters, mode and current standing."""

    __tablename__ = "arena_agents"

    # Identifiers
    external_id = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    provider = Column(String(50), nullable=False)
    model_name = Column(String(200), nullable=False)
    color = Column(String(20), nullable=False, default="#6b7280")
    cost_per_1k_calls = Column(Numeric(10, 4), nullable=False, default=Decimal("0"))

    # Competition
    status = Column(String(20), nullable=False, default="active")
    mode = Column(String(40), nullable=False, default="NEW_BASELINE")

    # Financial tracking
    initial_capital = Column(MONEY, nullable=False, default=Decimal("10000"))
    cash = Column(MONEY, nullable=False, default=Decimal("10000"))
    realized_pnl = Column(MONEY, nullable=False, default=Decimal("0"))
    portfolio_value = Column(MONEY, nullable=False, default=Decimal("10000"))

    # Performance
    total_trades = Column(Integer, nullable=False, default=0)
    winning_trades = Column(Integer, nullable=False, default=0)
    last_trade_at = Column(DateTime(timezone=True), nullable=True)
    rank = Column(Integer, nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("cash >= 0", name="agent_cash_non_negative"),
        CheckConstraint(
            "status IN ('active', 'paused', 'disqualified')",
            name="valid_agent_status",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def pnl_pct(self) -> float:
        if not self.initial_capital:
            return 0.0
        return float((self.portfolio_value - self.initial_capital) / self.initial_capital * 100)

    def __repr__(self) -> str:
        return f"<Agent {self.display_name} (cash={self.cash})>"

"""Competition configuration database model."""

from sqlalchemy import Boolean, Column, DateTime, Numeric, String

from arena.database.base import Base
from arena.models.agent import MONEY
from arena.models.base import TimestampMixin, UUIDMixin


class Competition(Base, UUIDMixin, TimestampMixin):
    """Competition window and trading limits. Read-only during a session."""

    __tablename__ = "arena_competition"

    name = Column(String(100), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)

    initial_capital = Column(MONEY, nullable=False)
    fee_rate = Column(Numeric(8, 6), nullable=False)
    min_trade_value = Column(MONEY, nullable=False)
    max_position_pct = Column(Numeric(6, 4), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Competition {self.name} active={self.is_active}>"

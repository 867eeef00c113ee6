"""Open position database model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)

from arena.database.base import Base
from arena.models.agent import MONEY
from arena.models.base import TimestampMixin, UUIDMixin

QUANTITY = Numeric(20, 6)


class Position(Base, UUIDMixin, TimestampMixin):
    """An agent's holding in one instrument. Deleted when quantity reaches zero."""

    __tablename__ = "arena_positions"

    agent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("arena_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instrument = Column(String(32), nullable=False)

    quantity = Column(QUANTITY, nullable=False)
    avg_entry_price = Column(MONEY, nullable=False)
    last_price = Column(MONEY, nullable=False)

    leverage = Column(Numeric(6, 2), nullable=True)
    stop_loss = Column(MONEY, nullable=True)
    target_price = Column(MONEY, nullable=True)

    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("agent_id", "instrument", name="uq_position_agent_instrument"),
        CheckConstraint("quantity > 0", name="position_quantity_positive"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def market_value(self):
        return self.quantity * self.last_price

    def __repr__(self) -> str:
        return f"<Position {self.instrument} {self.quantity} @ {self.avg_entry_price}>"

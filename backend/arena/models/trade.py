"""Immutable trade record database model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)

from arena.database.base import Base
from arena.models.agent import MONEY
from arena.models.base import UUIDMixin, utcnow
from arena.models.position import QUANTITY


class TradeRecord(Base, UUIDMixin):
    """Append-only fact for one executed trade."""

    __tablename__ = "arena_trades"

    agent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("arena_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    instrument = Column(String(32), nullable=False)
    side = Column(String(4), nullable=False)
    quantity = Column(QUANTITY, nullable=False)
    price = Column(MONEY, nullable=False)
    fee = Column(MONEY, nullable=False)
    notional = Column(MONEY, nullable=False)
    net_value = Column(MONEY, nullable=False)

    # Only set on position-reducing trades
    realized_pnl = Column(MONEY, nullable=True)

    leverage = Column(Numeric(6, 2), nullable=True)
    confidence = Column(Numeric(5, 2), nullable=True)
    rationale = Column(Text, nullable=False, default="")

    executed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("side IN ('BUY', 'SELL')", name="valid_trade_side"),
        CheckConstraint("quantity > 0", name="trade_quantity_positive"),
        Index("idx_trades_agent_executed", "agent_id", "executed_at"),
    )

    def __repr__(self) -> str:
        return f"<TradeRecord {self.side} {self.quantity} {self.instrument} @ {self.price}>"

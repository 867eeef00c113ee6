"""Decision audit record database model."""

from sqlalchemy import Column, ForeignKey, Index, Integer, JSON, String, Text, Uuid

from arena.database.base import Base
from arena.models.base import TimestampMixin, UUIDMixin


class DecisionRecord(Base, UUIDMixin, TimestampMixin):
    """One per agent per session, written even when nothing was executed."""

    __tablename__ = "arena_decisions"

    agent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("arena_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    cycle_key = Column(String(20), nullable=False)

    # TRADE, HOLD or FAILED
    decision_type = Column(String(10), nullable=False)
    sentiment = Column(String(10), nullable=True)
    summary = Column(Text, nullable=False, default="")
    actions = Column(JSON, nullable=False, default=list)
    top_picks = Column(JSON, nullable=False, default=list)
    avoid_list = Column(JSON, nullable=False, default=list)
    stocks_analyzed = Column(Integer, nullable=False, default=0)

    raw_response = Column(Text, nullable=True)
    tokens_used = Column(Integer, nullable=False, default=0)
    latency_ms = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    __table_args__ = (Index("idx_decisions_agent_cycle", "agent_id", "cycle_key"),)

    def __repr__(self) -> str:
        return f"<DecisionRecord {self.decision_type} {self.cycle_key}>"

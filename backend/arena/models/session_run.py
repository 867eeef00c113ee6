"""Session run history database model."""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from arena.database.base import Base
from arena.models.base import TimestampMixin, UUIDMixin


class SessionRun(Base, UUIDMixin, TimestampMixin):
    """Persisted session report for monitoring surfaces."""

    __tablename__ = "arena_session_runs"

    cycle_key = Column(String(20), nullable=False, index=True)
    state = Column(String(20), nullable=False)
    gate = Column(String(30), nullable=False)
    dry_run = Column(Boolean, nullable=False, default=False)

    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    agents_processed = Column(Integer, nullable=False, default=0)
    trades_executed = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)
    report = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<SessionRun {self.cycle_key} {self.state}>"

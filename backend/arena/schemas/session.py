"""Session report schemas."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from arena.schemas.common import BaseSchema
from arena.schemas.leaderboard import LeaderboardEntry
from arena.schemas.trading import ExecutionResult


class SessionState(StrEnum):
    GATED = "gated"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class GateOutcome(StrEnum):
    OPEN = "open"
    NO_COMPETITION = "no_competition"
    COMPETITION_INACTIVE = "competition_inactive"
    NOT_STARTED = "not_started"
    ENDED = "ended"
    MARKET_CLOSED = "market_closed"


class AgentOutcome(StrEnum):
    TRADED = "traded"
    HOLD = "hold"
    NO_VALID_ACTIONS = "no_valid_actions"
    FAILED = "failed"
    SKIPPED_ALREADY_RAN = "skipped_already_ran"
    SKIPPED_BUDGET = "skipped_budget"


class AgentSessionResult(BaseSchema):
    agent_id: UUID
    external_id: str
    display_name: str
    mode: str
    outcome: AgentOutcome
    sentiment: str | None = None
    summary: str = ""
    trades_executed: int = 0
    executions: list[ExecutionResult] = Field(default_factory=list)
    tokens_used: int = 0
    latency_ms: int = 0
    estimated_cost: float = 0.0
    error: str | None = None
    rank: int | None = None

    @property
    def success(self) -> bool:
        return self.outcome in (AgentOutcome.TRADED, AgentOutcome.HOLD)


class SessionReport(BaseSchema):
    session_id: UUID
    cycle_key: str
    timestamp: datetime
    finished_at: datetime | None = None
    state: SessionState
    gate: GateOutcome
    market_open: bool = False
    competition_active: bool = False
    dry_run: bool = False
    agents_processed: int = 0
    trades_executed: int = 0
    total_tokens_used: int = 0
    total_latency_ms: int = 0
    estimated_cost: float = 0.0
    results: list[AgentSessionResult] = Field(default_factory=list)
    rankings: list[LeaderboardEntry] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    alerts: list[str] = Field(default_factory=list)

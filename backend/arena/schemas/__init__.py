from .common import (
    AgentStatus,
    BaseSchema,
    CompetitionMode,
    Sentiment,
    TradeSide,
)
from .decision import (
    Decision,
    DecisionFailure,
    DecisionOutcome,
    DecisionSuccess,
    FailureKind,
    TradeAction,
)
from .leaderboard import AgentMetrics, LeaderboardEntry
from .market import InstrumentProfile, Quote, ScreenedInstrument
from .session import (
    AgentOutcome,
    AgentSessionResult,
    GateOutcome,
    SessionReport,
    SessionState,
)
from .trading import ExecutionResult, ExecutionStatus, RejectionReason, TradeOut

__all__ = [
    "AgentMetrics",
    "AgentOutcome",
    "AgentSessionResult",
    "AgentStatus",
    "BaseSchema",
    "CompetitionMode",
    "Decision",
    "DecisionFailure",
    "DecisionOutcome",
    "DecisionSuccess",
    "ExecutionResult",
    "ExecutionStatus",
    "FailureKind",
    "GateOutcome",
    "InstrumentProfile",
    "LeaderboardEntry",
    "Quote",
    "RejectionReason",
    "ScreenedInstrument",
    "Sentiment",
    "SessionReport",
    "SessionState",
    "TradeAction",
    "TradeOut",
    "TradeSide",
]

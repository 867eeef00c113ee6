from .agent import Agent
from .competition import Competition
from .decision import DecisionRecord
from .position import Position
from .session_run import SessionRun
from .snapshot import DailySnapshot
from .trade import TradeRecord

__all__ = [
    "Agent",
    "Competition",
    "DailySnapshot",
    "DecisionRecord",
    "Position",
    "SessionRun",
    "TradeRecord",
]

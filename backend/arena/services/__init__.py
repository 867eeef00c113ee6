from .leaderboard import LeaderboardService, leaderboard_service
from .ledger import LedgerStore, ledger_store
from .market_calendar import MarketCalendar
from .quotes import (
    EODHDQuoteSource,
    LedgerPriceSource,
    QuoteResolver,
    QuoteSource,
    StaticPriceSource,
)
from .session_runner import SessionRunner
from .snapshots import take_daily_snapshots
from .trade_executor import TradeExecutor, TradingLimits, validate_action

__all__ = [
    "EODHDQuoteSource",
    "LeaderboardService",
    "LedgerPriceSource",
    "LedgerStore",
    "MarketCalendar",
    "QuoteResolver",
    "QuoteSource",
    "SessionRunner",
    "StaticPriceSource",
    "TradeExecutor",
    "TradingLimits",
    "leaderboard_service",
    "ledger_store",
    "take_daily_snapshots",
    "validate_action",
]

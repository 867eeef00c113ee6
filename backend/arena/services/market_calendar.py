"""Session gate: competition window and exchange trading hours."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from arena.config import SessionConfig
from arena.models import Competition
from arena.models.base import ensure_utc
from arena.schemas.session import GateOutcome


class MarketCalendar:
    def __init__(self, config: SessionConfig):
        self.config = config
        self.tz = ZoneInfo(config.exchange_timezone)

    def local(self, now: datetime) -> datetime:
        return ensure_utc(now).astimezone(self.tz)

    def is_market_open(self, now: datetime) -> bool:
        local = self.local(now)
        if local.weekday() not in self.config.trading_days:
            return False
        t = local.time()
        if not self.config.market_open <= t < self.config.market_close:
            return False
        if self.config.lunch_start and self.config.lunch_end:
            if self.config.lunch_start <= t < self.config.lunch_end:
                return False
        return True

    def cycle_key(self, now: datetime) -> str:
        """Exchange-local date plus hour slot, e.g. ``2026-01-05T10``."""
        return self.local(now).strftime("%Y-%m-%dT%H")

    def day_start(self, now: datetime) -> datetime:
        """Start of the exchange-local day, in UTC."""
        local = self.local(now)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)

    def local_date(self, now: datetime):
        return self.local(now).date()

    def gate(
        self,
        competition: Competition | None,
        now: datetime,
        check_market_hours: bool = True,
    ) -> GateOutcome:
        if competition is None:
            return GateOutcome.NO_COMPETITION
        if not competition.is_active:
            return GateOutcome.COMPETITION_INACTIVE
        now = ensure_utc(now)
        if now < ensure_utc(competition.start_at):
            return GateOutcome.NOT_STARTED
        if now > ensure_utc(competition.end_at):
            return GateOutcome.ENDED
        if check_market_hours and not self.is_market_open(now):
            return GateOutcome.MARKET_CLOSED
        return GateOutcome.OPEN

    def competition_days(self, competition: Competition, now: datetime) -> tuple[int, int]:
        """(days elapsed, days remaining), both floored at zero."""
        now = ensure_utc(now)
        elapsed = (now - ensure_utc(competition.start_at)) // timedelta(days=1)
        remaining = (ensure_utc(competition.end_at) - now) // timedelta(days=1)
        return max(0, elapsed), max(0, remaining)

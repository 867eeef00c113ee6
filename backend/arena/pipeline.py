"""Entry-point wiring: database, quote sources and the session runner."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import yaml
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from arena.config import Settings
from arena.database import create_all, create_engine, create_session_factory
from arena.errors import ConfigurationError
from arena.llm_providers import DEFAULT_ROSTER
from arena.models import Agent, Competition, DailySnapshot
from arena.models.base import utcnow
from arena.observability import instrument_engine
from arena.retry import RetryPolicy
from arena.schemas.common import CompetitionMode
from arena.schemas.market import InstrumentProfile
from arena.schemas.session import SessionReport
from arena.services.ledger import ledger_store, to_decimal
from arena.services.market_calendar import MarketCalendar
from arena.services.quotes import (
    EODHDQuoteSource,
    LedgerPriceSource,
    QuoteResolver,
    QuoteSource,
    StaticPriceSource,
)
from arena.services.session_runner import SessionRunner
from arena.services.snapshots import take_daily_snapshots

logger = logging.getLogger("arena.pipeline")


def load_universe(path: Path) -> list[InstrumentProfile]:
    """Read the screening universe from a YAML list of instrument profiles."""
    if not path.exists():
        logger.warning(f"Universe file not found: {path}. Screening only held instruments.")
        return []

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []

    entries = data.get("instruments", []) if isinstance(data, dict) else data
    profiles = [InstrumentProfile.model_validate(entry) for entry in entries]
    logger.info(f"Loaded {len(profiles)} instruments from {path}")
    return profiles


@asynccontextmanager
async def open_database(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Engine plus session factory, with tables created; disposed on exit."""
    engine: AsyncEngine = create_engine(settings.resolved_database_url)
    instrument_engine(engine)
    try:
        await create_all(engine)
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@asynccontextmanager
async def open_quote_resolver(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    profiles: list[InstrumentProfile],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[QuoteResolver]:
    """Live quotes first (when a key is set), then ledger prices, then reference prices."""
    async with AsyncExitStack() as stack:
        sources: list[QuoteSource] = []
        if settings.eodhd_api_key:
            live = EODHDQuoteSource(
                settings.eodhd_api_key,
                settings.quotes,
                RetryPolicy.from_config(settings.retry),
                transport=transport,
            )
            sources.append(await stack.enter_async_context(live))
        else:
            logger.warning("EODHD_API_KEY not set - using ledger and reference prices only")

        sources.append(LedgerPriceSource(session_factory))
        sources.append(StaticPriceSource.from_profiles(profiles))
        yield QuoteResolver(sources, settings.quotes)


def agent_modes(settings: Settings) -> dict[str, CompetitionMode]:
    """Validated ``competition.agent_modes``, keyed by roster external id."""
    roster_ids = {entry.external_id for entry in DEFAULT_ROSTER}
    modes = {}
    for external_id, mode in settings.competition.agent_modes.items():
        if external_id not in roster_ids:
            raise ConfigurationError(
                f"competition.agent_modes names unknown agent {external_id!r}; "
                f"roster has {', '.join(sorted(roster_ids))}"
            )
        try:
            modes[external_id] = CompetitionMode(mode)
        except ValueError:
            raise ConfigurationError(
                f"competition.agent_modes[{external_id!r}] = {mode!r} is not one of "
                f"{', '.join(m.value for m in CompetitionMode)}"
            ) from None
    return modes


async def seed_competition(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> tuple[Competition, list[Agent]]:
    """Create the competition row and roster agents if they do not exist yet."""
    modes = agent_modes(settings)
    async with session_factory() as db:
        competition = await ledger_store.ensure_competition(db, settings.competition)
        agents = await ledger_store.seed_agents(
            db,
            DEFAULT_ROSTER,
            initial_capital=to_decimal(competition.initial_capital),
            modes=modes,
        )
    return competition, agents


async def run_session(
    settings: Settings,
    agent_ref: Optional[str] = None,
    dry_run: bool = False,
    force: bool = False,
    budget_seconds: Optional[float] = None,
    now: Optional[datetime] = None,
) -> SessionReport:
    """Run one session pass against the configured database.

    ``budget_seconds`` overrides the configured wall-clock budget for this pass.
    """
    profiles = load_universe(settings.data_dir / "universe.yaml")

    async with open_database(settings) as session_factory:
        async with open_quote_resolver(settings, session_factory, profiles) as resolver:
            runner = SessionRunner(settings, session_factory, resolver, profiles=profiles)
            return await runner.run(
                agent_ref=agent_ref,
                dry_run=dry_run,
                force=force,
                budget_seconds=budget_seconds,
                now=now,
            )


async def run_daily_snapshot(
    settings: Settings, now: Optional[datetime] = None
) -> list[DailySnapshot]:
    """Snapshot every active agent for the current exchange-local date."""
    snapshot_date = MarketCalendar(settings.session).local_date(now or utcnow())

    async with open_database(settings) as session_factory:
        async with session_factory() as db:
            return await take_daily_snapshots(db, snapshot_date)

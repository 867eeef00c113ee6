"""Builders shared by the unit tests: in-memory ledger, roster and settings."""

from datetime import datetime, timezone
from decimal import Decimal

from arena.config import CompetitionConfig, RetryConfig, Settings
from arena.database import create_all, create_engine, create_session_factory
from arena.llm_providers import AgentModelConfig, ProviderKind
from arena.models import Agent
from arena.schemas.common import CompetitionMode
from arena.services.ledger import ledger_store

MEMORY_URL = "sqlite+aiosqlite:///:memory:"

# Monday 2026-01-05 10:00 in Kuala Lumpur (UTC+8)
MARKET_OPEN_UTC = datetime(2026, 1, 5, 2, 0, tzinfo=timezone.utc)
# Same Monday, 13:00 local: lunch break
LUNCH_UTC = datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc)
# Saturday 2026-01-10 10:00 local
WEEKEND_UTC = datetime(2026, 1, 10, 2, 0, tzinfo=timezone.utc)

FAST_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=0.0, jitter=0.0)


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": MEMORY_URL,
        "cron_secret": "",
        "environment": "test",
        "retry": FAST_RETRY,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def open_ledger():
    engine = create_engine(MEMORY_URL)
    await create_all(engine)
    return engine, create_session_factory(engine)


def make_roster(*external_ids: str) -> list[AgentModelConfig]:
    return [
        AgentModelConfig(
            external_id=external_id,
            display_name=external_id.title(),
            provider=ProviderKind.OPENAI,
            model="test-model",
            api_key_env="OPENAI_API_KEY",
            cost_per_1k_calls=10.0,
        )
        for external_id in external_ids
    ]


async def seed_ledger(
    factory,
    agents: dict[str, CompetitionMode],
    capital: float = 10_000.0,
    competition: CompetitionConfig | None = None,
) -> dict[str, Agent]:
    async with factory() as db:
        await ledger_store.ensure_competition(db, competition or CompetitionConfig())
        seeded = await ledger_store.seed_agents(
            db, make_roster(*agents), Decimal(str(capital)), modes=agents
        )
    return {agent.external_id: agent for agent in seeded}

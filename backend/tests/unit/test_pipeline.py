"""Tests for entry-point wiring: universe file, seeding and the snapshot job."""

import asyncio
from datetime import datetime, timezone

import pytest

from arena.config import CompetitionConfig
from arena.errors import ConfigurationError
from arena.llm_providers import DEFAULT_ROSTER
from arena.pipeline import (
    agent_modes,
    load_universe,
    open_database,
    run_daily_snapshot,
    seed_competition,
)
from arena.schemas.common import CompetitionMode
from tests.support import make_settings


def test_load_universe_accepts_list_or_mapping(tmp_path) -> None:
    listed = tmp_path / "listed.yaml"
    listed.write_text(
        "- code: '1155'\n  name: Maybank\n  pe_ratio: 11.2\n- code: '5347'\n",
        encoding="utf-8",
    )
    mapped = tmp_path / "mapped.yaml"
    mapped.write_text("instruments:\n  - code: '7113'\n    sector: Healthcare\n", encoding="utf-8")

    assert [p.code for p in load_universe(listed)] == ["1155", "5347"]
    assert load_universe(listed)[0].pe_ratio == 11.2
    assert load_universe(mapped)[0].sector == "Healthcare"
    assert load_universe(tmp_path / "missing.yaml") == []


def test_seed_then_snapshot_on_file_database(tmp_path) -> None:
    settings = make_settings(
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'arena.db'}",
        competition=CompetitionConfig(agent_modes={"claude": "MONK_MODE"}),
    )

    async def run():
        async with open_database(settings) as factory:
            competition, agents = await seed_competition(settings, factory)
            # Seeding twice keeps one row per roster entry
            _, again = await seed_competition(settings, factory)
        snapshots = await run_daily_snapshot(
            settings, now=datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        )
        return competition, agents, again, snapshots

    competition, agents, again, snapshots = asyncio.run(run())

    assert competition.is_active
    assert len(agents) == len(again) == len(DEFAULT_ROSTER)
    modes = {a.external_id: a.mode for a in agents}
    assert modes["claude"] == "MONK_MODE"
    assert modes["chatgpt"] == "NEW_BASELINE"
    assert len(snapshots) == len(DEFAULT_ROSTER)
    assert {str(s.snapshot_date) for s in snapshots} == {"2026-01-05"}


@pytest.mark.parametrize(
    "modes, message",
    [
        ({"claude": "YOLO_MODE"}, "YOLO_MODE"),
        ({"hal9000": "MONK_MODE"}, "hal9000"),
    ],
)
def test_seeding_rejects_bad_agent_modes(tmp_path, modes, message) -> None:
    settings = make_settings(
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'arena.db'}",
        competition=CompetitionConfig(agent_modes=modes),
    )

    async def run():
        async with open_database(settings) as factory:
            await seed_competition(settings, factory)

    with pytest.raises(ConfigurationError, match=message):
        asyncio.run(run())


def test_agent_modes_maps_roster_ids_to_modes() -> None:
    settings = make_settings(
        competition=CompetitionConfig(agent_modes={"gemini": "MAX_LEVERAGE"})
    )
    assert agent_modes(settings) == {"gemini": CompetitionMode.MAX_LEVERAGE}

"""Competition mode rule bundles."""

from dataclasses import dataclass

from arena.schemas.common import CompetitionMode


@dataclass(frozen=True)
class ModeRules:
    mode: CompetitionMode
    label: str
    max_position_pct: float
    leverage_required: bool = False
    min_leverage: float | None = None
    max_leverage: float | None = None
    max_daily_loss_pct: float | None = None
    mandatory_stop_loss: bool = False
    can_see_competitors: bool = False


MODE_RULES: dict[CompetitionMode, ModeRules] = {
    CompetitionMode.NEW_BASELINE: ModeRules(
        mode=CompetitionMode.NEW_BASELINE,
        label="New Baseline",
        max_position_pct=0.30,
    ),
    CompetitionMode.MONK_MODE: ModeRules(
        mode=CompetitionMode.MONK_MODE,
        label="Monk Mode",
        max_position_pct=0.15,
        max_daily_loss_pct=0.02,
        mandatory_stop_loss=True,
    ),
    CompetitionMode.SITUATIONAL_AWARENESS: ModeRules(
        mode=CompetitionMode.SITUATIONAL_AWARENESS,
        label="Situational Awareness",
        max_position_pct=0.30,
        can_see_competitors=True,
    ),
    CompetitionMode.MAX_LEVERAGE: ModeRules(
        mode=CompetitionMode.MAX_LEVERAGE,
        label="Max Leverage",
        max_position_pct=0.30,
        leverage_required=True,
        min_leverage=2.5,
        max_leverage=3.0,
    ),
}


def rules_for(mode: str | CompetitionMode) -> ModeRules:
    """Rules for a mode tag; unknown tags fall back to the baseline."""
    try:
        return MODE_RULES[CompetitionMode(mode)]
    except ValueError:
        return MODE_RULES[CompetitionMode.NEW_BASELINE]

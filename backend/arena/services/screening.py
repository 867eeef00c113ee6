"""
Instrument screening: fundamental and technical scores, signals and tiers.

Pure functions over InstrumentProfile records and live quotes. Missing inputs
contribute nothing to a score rather than failing the screen.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from arena.schemas.market import InstrumentProfile, Quote, ScreenedInstrument

# YoY performance category -> points (1 = revenue and profit up, 5 = turnaround)
CATEGORY_POINTS = {1: 45, 5: 40, 3: 30, 2: 20, 4: 12, 6: 10}
DEFAULT_CATEGORY_POINTS = 15

FUNDAMENTAL_WEIGHT = 0.6
TECHNICAL_WEIGHT = 0.4

TIER_SIZES = (20, 30, 50)


def fundamental_score(profile: InstrumentProfile) -> float:
    score = 0.0

    if profile.yoy_category is not None:
        score += CATEGORY_POINTS.get(profile.yoy_category, DEFAULT_CATEGORY_POINTS)

    pe = profile.pe_ratio
    if pe is not None and pe > 0:
        if pe < 8:
            score += 25
        elif pe < 12:
            score += 22
        elif pe < 15:
            score += 18
        elif pe < 20:
            score += 12
        elif pe < 30:
            score += 5

    if profile.latest_profit is not None and profile.latest_profit > 0:
        score += 15
        growth = profile.profit_growth or 0
        if growth > 20:
            score += 5
        elif growth > 10:
            score += 3
        elif growth > 0:
            score += 1

    dy = profile.dividend_yield
    if dy is not None and dy > 0:
        if dy > 0.06:
            score += 15
        elif dy > 0.04:
            score += 12
        elif dy > 0.02:
            score += 8
        else:
            score += 4

    return min(100.0, score)


def price_position(price: float | None, low: float | None, high: float | None) -> float | None:
    """Where the price sits in its 52-week range, 0-100."""
    if price is None or low is None or high is None or high <= low:
        return None
    return max(0.0, min(100.0, (price - low) / (high - low) * 100))


def technical_score(
    volume_ratio: float | None,
    change_pct: float | None,
    position: float | None,
) -> float:
    score = 50.0
    change = change_pct or 0.0

    if volume_ratio is not None:
        if volume_ratio > 3:
            score += 30
        elif volume_ratio > 2:
            score += 25
        elif volume_ratio > 1.5:
            score += 15
        elif volume_ratio > 1:
            score += 5
        elif volume_ratio < 0.5:
            score -= 10

    if change_pct is not None:
        if change > 3:
            score += 20
        elif change > 1:
            score += 10
        elif change > 0:
            score += 5
        elif change < -3:
            score -= 10

    if position is not None:
        if position < 15 and change >= 0:
            score += 15
        if position > 85 and change > 0:
            score += 10
        if position > 95:
            score -= 5
        if position < 5:
            score -= 10

    return max(0.0, min(100.0, score))


def signals_for(
    profile: InstrumentProfile,
    volume_ratio: float | None,
    change_pct: float | None,
    position: float | None,
) -> list[str]:
    signals: list[str] = []
    change = change_pct or 0.0

    if profile.yoy_category == 1:
        signals.append("Strong Growth (Rev+Profit UP)")
    if profile.yoy_category == 3:
        signals.append("Improving Margins")
    if (profile.profit_growth or 0) > 50:
        signals.append("Profit Surge (+50%)")
    if profile.pe_ratio is not None and 0 < profile.pe_ratio < 10:
        signals.append("Low PE (<10)")
    if profile.dividend_yield is not None and profile.dividend_yield > 0.05:
        signals.append("High Dividend (>5%)")
    if volume_ratio is not None and volume_ratio > 2:
        signals.append("Unusual Volume (2x+)")
    if position is not None and position < 15 and change >= 0:
        signals.append("Support Bounce")
    if position is not None and position > 85 and change > 1:
        signals.append("Breakout")
    if change > 5:
        signals.append("Strong Momentum")

    return signals


def screen_instrument(profile: InstrumentProfile, quote: Quote | None = None) -> ScreenedInstrument:
    price = quote.price if quote else profile.reference_price
    change_pct = quote.change_pct if quote else None
    if change_pct is None and quote and quote.previous_close:
        change_pct = (quote.price - quote.previous_close) / quote.previous_close * 100

    volume_ratio = None
    if quote and quote.volume is not None and profile.avg_volume:
        volume_ratio = quote.volume / profile.avg_volume

    position = price_position(price, profile.week52_low, profile.week52_high)
    fundamental = fundamental_score(profile)
    technical = technical_score(volume_ratio, change_pct, position)

    return ScreenedInstrument(
        code=profile.code,
        name=profile.name,
        sector=profile.sector,
        price=price,
        change_pct=change_pct,
        volume_ratio=volume_ratio,
        price_position=position,
        fundamental_score=fundamental,
        technical_score=technical,
        overall_score=fundamental * FUNDAMENTAL_WEIGHT + technical * TECHNICAL_WEIGHT,
        signals=signals_for(profile, volume_ratio, change_pct, position),
        pe_ratio=profile.pe_ratio,
        dividend_yield=profile.dividend_yield,
        yoy_category=profile.yoy_category,
    )


def passes_quality_filter(item: ScreenedInstrument) -> bool:
    return item.fundamental_score >= 40 or len(item.signals) >= 2


@dataclass
class MarketHealth:
    advancing: int = 0
    declining: int = 0
    unchanged: int = 0
    avg_pe: float | None = None
    sector_strength: dict[str, float] = field(default_factory=dict)


@dataclass
class ScreeningResult:
    total_analyzed: int
    tier1: list[ScreenedInstrument]
    tier2: list[ScreenedInstrument]
    tier3: list[ScreenedInstrument]
    health: MarketHealth
    sector_leaders: dict[str, ScreenedInstrument]

    @property
    def ranked(self) -> list[ScreenedInstrument]:
        return self.tier1 + self.tier2 + self.tier3


def market_health(items: list[ScreenedInstrument]) -> MarketHealth:
    health = MarketHealth()
    pes = []
    sectors: dict[str, list[float]] = defaultdict(list)

    for item in items:
        if item.change_pct is None or item.change_pct == 0:
            health.unchanged += 1
        elif item.change_pct > 0:
            health.advancing += 1
        else:
            health.declining += 1
        if item.pe_ratio is not None and item.pe_ratio > 0:
            pes.append(item.pe_ratio)
        if item.sector:
            sectors[item.sector].append(item.overall_score)

    if pes:
        health.avg_pe = sum(pes) / len(pes)
    health.sector_strength = {s: sum(v) / len(v) for s, v in sectors.items()}
    return health


def screen_universe(
    profiles: list[InstrumentProfile],
    quotes: dict[str, Quote] | None = None,
) -> ScreeningResult:
    """Score every profile, keep the quality ones, and split them into tiers."""
    quotes = quotes or {}
    screened = [screen_instrument(p, quotes.get(p.code)) for p in profiles]

    quality = [s for s in screened if passes_quality_filter(s)]
    # Stable order: score descending, code ascending
    quality.sort(key=lambda s: (-s.overall_score, s.code))

    t1, t2, t3 = TIER_SIZES
    tiers = (quality[:t1], quality[t1 : t1 + t2], quality[t1 + t2 : t1 + t2 + t3])
    for tier_number, tier in enumerate(tiers, 1):
        for item in tier:
            item.tier = tier_number

    leaders: dict[str, ScreenedInstrument] = {}
    for item in quality:
        if item.sector and item.sector not in leaders:
            leaders[item.sector] = item

    return ScreeningResult(
        total_analyzed=len(screened),
        tier1=tiers[0],
        tier2=tiers[1],
        tier3=tiers[2],
        health=market_health(screened),
        sector_leaders=leaders,
    )

"""
Screening/Context Builder

Turns an agent's holdings, recent trades and the ranked candidate list into
the bounded text brief sent to its decision provider. Deterministic and free of
I/O: the session runner loads the inputs, this module only formats them.
Missing values are left out of the brief rather than printed as placeholders.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from arena.models import Position, TradeRecord
from arena.schemas.market import Quote, ScreenedInstrument
from arena.services.rules import ModeRules
from arena.services.screening import MarketHealth

MAX_BRIEF_CHARS = 12_000
MAX_RATIONALE_CHARS = 160


@dataclass
class HoldingView:
    instrument: str
    quantity: float
    avg_entry_price: float
    last_price: float
    leverage: Optional[float] = None

    @property
    def market_value(self) -> float:
        return self.quantity * self.last_price

    @property
    def unrealized_pnl(self) -> float:
        return (self.last_price - self.avg_entry_price) * self.quantity

    @property
    def unrealized_pct(self) -> float:
        if not self.avg_entry_price:
            return 0.0
        return (self.last_price - self.avg_entry_price) / self.avg_entry_price * 100


@dataclass
class TradeView:
    instrument: str
    side: str
    quantity: float
    price: float
    executed_at: Optional[datetime] = None
    realized_pnl: Optional[float] = None
    rationale: str = ""


@dataclass
class CompetitorView:
    display_name: str
    rank: Optional[int]
    portfolio_value: float
    pnl_pct: float
    cash_pct: float
    top_holdings: list[tuple[str, float]] = field(default_factory=list)


@dataclass
class AgentBrief:
    display_name: str
    rules: ModeRules
    cash: float
    portfolio_value: float
    initial_capital: float
    realized_pnl: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    rank: Optional[int] = None
    agent_count: Optional[int] = None
    days_elapsed: Optional[int] = None
    days_remaining: Optional[int] = None
    holdings: list[HoldingView] = field(default_factory=list)
    recent_trades: list[TradeView] = field(default_factory=list)
    candidates: list[ScreenedInstrument] = field(default_factory=list)
    competitors: list[CompetitorView] = field(default_factory=list)
    health: Optional[MarketHealth] = None
    realized_pnl_today: Optional[float] = None
    timestamp: Optional[datetime] = None


def _f(value) -> float:
    return float(value) if isinstance(value, Decimal) else value


def holding_views(positions: Iterable[Position], quotes: dict[str, Quote]) -> list[HoldingView]:
    views = []
    for p in positions:
        quote = quotes.get(p.instrument)
        views.append(
            HoldingView(
                instrument=p.instrument,
                quantity=_f(p.quantity),
                avg_entry_price=_f(p.avg_entry_price),
                last_price=quote.price if quote else _f(p.last_price),
                leverage=_f(p.leverage) if p.leverage is not None else None,
            )
        )
    return views


def trade_views(trades: Iterable[TradeRecord]) -> list[TradeView]:
    return [
        TradeView(
            instrument=t.instrument,
            side=t.side,
            quantity=_f(t.quantity),
            price=_f(t.price),
            executed_at=t.executed_at,
            realized_pnl=_f(t.realized_pnl) if t.realized_pnl is not None else None,
            rationale=t.rationale or "",
        )
        for t in trades
    ]


def _portfolio_section(brief: AgentBrief) -> list[str]:
    pnl = brief.portfolio_value - brief.initial_capital
    pnl_pct = pnl / brief.initial_capital * 100 if brief.initial_capital else 0.0
    lines = [
        "## YOUR PORTFOLIO",
        f"Cash available: RM {brief.cash:,.2f}",
        f"Portfolio value: RM {brief.portfolio_value:,.2f} ({pnl_pct:+.2f}% vs start)",
        f"Realized P&L: RM {brief.realized_pnl:,.2f}",
    ]
    if brief.total_trades:
        win_rate = brief.winning_trades / brief.total_trades * 100
        lines.append(f"Trades: {brief.total_trades} ({win_rate:.0f}% winning)")
    if brief.rank is not None:
        standing = f"Current rank: #{brief.rank}"
        if brief.agent_count:
            standing += f" of {brief.agent_count}"
        lines.append(standing)
    if brief.days_elapsed is not None and brief.days_remaining is not None:
        lines.append(
            f"Competition day {brief.days_elapsed}, {brief.days_remaining} days remaining"
        )
    if brief.realized_pnl_today is not None and brief.rules.max_daily_loss_pct is not None:
        lines.append(
            f"Realized P&L today: RM {brief.realized_pnl_today:,.2f} "
            f"(limit -{brief.rules.max_daily_loss_pct:.0%} of starting capital)"
        )
    return lines


def _holdings_section(brief: AgentBrief) -> list[str]:
    if not brief.holdings:
        return ["## CURRENT HOLDINGS", "None (all cash)"]
    lines = ["## CURRENT HOLDINGS"]
    for h in brief.holdings:
        share = h.market_value / brief.portfolio_value * 100 if brief.portfolio_value else 0.0
        line = (
            f"- {h.instrument}: {h.quantity:g} @ avg {h.avg_entry_price:.4f}, "
            f"now {h.last_price:.4f}, P&L {h.unrealized_pnl:+,.2f} ({h.unrealized_pct:+.2f}%), "
            f"{share:.1f}% of portfolio"
        )
        if h.leverage:
            line += f", {h.leverage:g}x"
        lines.append(line)
    return lines


def _trades_section(brief: AgentBrief) -> list[str]:
    if not brief.recent_trades:
        return []
    lines = [f"## RECENT TRADES (last {len(brief.recent_trades)})"]
    for t in brief.recent_trades:
        parts = [f"- {t.side} {t.quantity:g} {t.instrument} @ {t.price:.4f}"]
        if t.executed_at is not None:
            parts.append(t.executed_at.strftime("%Y-%m-%d %H:%M"))
        if t.realized_pnl is not None:
            parts.append(f"P&L {t.realized_pnl:+,.2f}")
        if t.rationale:
            parts.append(f'"{t.rationale[:MAX_RATIONALE_CHARS]}"')
        lines.append(", ".join(parts))
    return lines


def _health_section(brief: AgentBrief) -> list[str]:
    health = brief.health
    if health is None:
        return []
    lines = [
        "## MARKET HEALTH",
        f"Advancing {health.advancing} / Declining {health.declining} / Unchanged {health.unchanged}",
    ]
    if health.avg_pe is not None:
        lines.append(f"Average PE: {health.avg_pe:.1f}")
    if health.sector_strength:
        top = sorted(health.sector_strength.items(), key=lambda kv: (-kv[1], kv[0]))[:5]
        lines.append("Strongest sectors: " + ", ".join(f"{s} ({v:.0f})" for s, v in top))
    return lines


def candidate_line(item: ScreenedInstrument) -> str:
    parts = [f"- {item.code}"]
    if item.name:
        parts[0] += f" ({item.name})"
    if item.price is not None:
        parts.append(f"price {item.price:.4f}")
    if item.change_pct is not None:
        parts.append(f"chg {item.change_pct:+.2f}%")
    if item.pe_ratio is not None:
        parts.append(f"PE {item.pe_ratio:.1f}")
    if item.dividend_yield is not None:
        parts.append(f"DY {item.dividend_yield * 100:.1f}%")
    if item.volume_ratio is not None:
        parts.append(f"vol {item.volume_ratio:.1f}x")
    parts.append(
        f"score {item.overall_score:.0f} (F{item.fundamental_score:.0f}/T{item.technical_score:.0f})"
    )
    if item.signals:
        parts.append("signals: " + ", ".join(item.signals))
    return ", ".join(parts)


def _competitor_section(brief: AgentBrief) -> list[str]:
    if not brief.rules.can_see_competitors or not brief.competitors:
        return []
    lines = ["## COMPETITORS (same mode, ranked within the mode)"]
    for c in brief.competitors:
        rank = f"#{c.rank} " if c.rank is not None else ""
        line = (
            f"- {rank}{c.display_name}: RM {c.portfolio_value:,.2f} ({c.pnl_pct:+.2f}%), "
            f"cash {c.cash_pct:.0f}%"
        )
        if c.top_holdings:
            line += "; top: " + ", ".join(f"{code} {pct:.0f}%" for code, pct in c.top_holdings)
        lines.append(line)
    return lines


def build_context(brief: AgentBrief, max_chars: int = MAX_BRIEF_CHARS) -> str:
    """Render the brief, adding candidates one by one until ``max_chars``."""
    header = []
    if brief.timestamp is not None:
        header.append(f"Session time: {brief.timestamp.isoformat(timespec='minutes')}")

    sections = [
        header,
        _portfolio_section(brief),
        _holdings_section(brief),
        _trades_section(brief),
        _competitor_section(brief),
        _health_section(brief),
    ]
    text = "\n\n".join("\n".join(s) for s in sections if s)

    if brief.candidates:
        block = "\n\n## CANDIDATES (ranked)"
        if len(text) + len(block) <= max_chars:
            text += block
            for item in brief.candidates:
                line = "\n" + candidate_line(item)
                if len(text) + len(line) > max_chars:
                    break
                text += line

    footer = "\n\nRespond with the JSON decision only."
    if len(text) + len(footer) <= max_chars:
        text += footer
    return text[:max_chars]

"""Arena CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from arena import __version__
from arena.config import get_settings
from arena.llm_providers import DEFAULT_ROSTER
from arena.pipeline import open_database, run_daily_snapshot, run_session, seed_competition
from arena.providers.router import provider_availability
from arena.scheduler import start_scheduler
from arena.services.leaderboard import leaderboard_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Arena Configuration
# API keys and secrets belong in .env, not here.

competition:
  name: Arena Season 1
  initial_capital: 10000.0
  fee_rate: 0.0015
  min_trade_value: 100.0
  max_position_pct: 0.30
  agent_modes: {}

session:
  budget_seconds: 270
  provider_timeout_seconds: 90
  recent_trades_window: 10
  candidate_count: 20
  exchange_timezone: Asia/Kuala_Lumpur

retry:
  max_attempts: 3
  base_delay_seconds: 0.5

quotes:
  batch_size: 10
  batch_delay_seconds: 0.1

scheduler:
  session_cron: "5 9-16 * * mon-fri"
  snapshot_cron: "30 17 * * mon-fri"

metrics:
  reference_annual_rate: 0.0
  sharpe_cap: 3.0
"""

UNIVERSE_TEMPLATE = """# Screening universe: one entry per instrument.
# Only `code` is required; every other field feeds the screening scores.
instruments: []
#  - code: "1155"
#    name: MAYBANK
#    sector: Financial Services
#    reference_price: 9.80
#    yoy_category: 1
#    pe_ratio: 12.5
#    latest_profit: 2500000000
#    dividend_yield: 0.06
#    avg_volume: 8000000
#    week52_low: 8.90
#    week52_high: 10.30
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from arena.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory, configuration template and ledger tables."""
    try:
        settings = get_settings()
        data_dir = settings.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        for name, template in (("config.yaml", CONFIG_TEMPLATE), ("universe.yaml", UNIVERSE_TEMPLATE)):
            path = data_dir / name
            if path.exists():
                logger.info(f"{name} already exists: {path}")
            else:
                path.write_text(template)
                logger.info(f"Created {name} template: {path}")

        async def _create_tables() -> None:
            async with open_database(settings):
                pass

        asyncio.run(_create_tables())

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Copy .env.example to .env and add your API keys")
        print("2. Fill in data/universe.yaml with the instruments to screen")
        print("3. Run 'python -m arena seed' to create the competition and agents")
        print("4. Run 'python -m arena run --dry-run' to try a session\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Arena Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Database: {settings.resolved_database_url}\n")

        c = settings.competition
        print("Competition:")
        print(f"  Name: {c.name}")
        print(f"  Window: {c.start_at:%Y-%m-%d %H:%M} -> {c.end_at:%Y-%m-%d %H:%M} UTC")
        print(f"  Initial Capital: RM {c.initial_capital:,.2f}")
        print(f"  Fee: {c.fee_rate:.2%} per side")
        print(f"  Min Trade Value: RM {c.min_trade_value:,.2f}")
        print(f"  Max Position: {c.max_position_pct:.0%}\n")

        s = settings.session
        print("Session:")
        print(f"  Budget: {s.budget_seconds:.0f}s (provider timeout {s.provider_timeout_seconds:.0f}s)")
        print(f"  Trading Hours: {s.market_open:%H:%M}-{s.market_close:%H:%M} {s.exchange_timezone}")
        print(f"  Candidates: {s.candidate_count}, recent trades: {s.recent_trades_window}\n")

        print("Scheduler:")
        print(f"  Sessions: {settings.scheduler.session_cron}")
        print(f"  Snapshots: {settings.scheduler.snapshot_cron}\n")

        print("Providers:")
        for external_id, available in provider_availability(settings, DEFAULT_ROSTER).items():
            print(f"  {external_id}: {'✓ Set' if available else '✗ Not set'}")
        print(f"  EODHD quotes: {'✓ Set' if settings.eodhd_api_key else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}")
        print(f"  Cron secret: {'✓ Set' if settings.cron_secret else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_seed(args: argparse.Namespace) -> int:
    """Create the competition row and roster agents."""
    try:
        settings = get_settings()

        async def _seed():
            async with open_database(settings) as factory:
                return await seed_competition(settings, factory)

        competition, agents = asyncio.run(_seed())

        print(f"\n✓ Competition: {competition.name}")
        print(f"Agents ({len(agents)}):")
        for agent in agents:
            print(f"  • {agent.external_id:<10} {agent.display_name:<12} {agent.mode}")
        print()
        return 0

    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        print(f"\n❌ Seeding failed: {e}\n")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Run one trading session."""
    _init_logfire()

    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        label = "DRY RUN" if args.dry_run else "LIVE LEDGER"
        print(f"\n=== Arena Session ({label}) ===\n")

        report = asyncio.run(
            run_session(
                settings,
                agent_ref=args.agent,
                dry_run=args.dry_run,
                force=args.force,
                budget_seconds=args.budget,
            )
        )

        print(f"Cycle: {report.cycle_key}")
        print(f"State: {report.state} (gate: {report.gate})")
        if report.state == "skipped":
            print()
            return 0

        print(f"Agents processed: {report.agents_processed}")
        print(f"Trades executed: {report.trades_executed}")
        print(f"Tokens: {report.total_tokens_used:,}  Est. cost: ${report.estimated_cost:.4f}\n")

        for result in report.results:
            rank = f"#{result.rank}" if result.rank is not None else "-"
            line = f"  {rank:>3} {result.display_name:<12} {result.outcome}"
            if result.trades_executed:
                line += f" ({result.trades_executed} trades)"
            if result.error:
                line += f" - {result.error}"
            print(line)
            for execution in result.executions:
                detail = execution.rejection or execution.status
                print(f"        {execution.side} {execution.quantity:g} {execution.instrument}: {detail}")

        for error in report.errors:
            print(f"\n⚠ {error}")
        for alert in report.alerts:
            print(f"\n❌ ALERT: {alert}")
        print()

        return 1 if report.alerts else 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Session failed: {e}", exc_info=True)
        print(f"\n❌ Session failed: {e}\n")
        return 1


def cmd_leaderboard(args: argparse.Namespace) -> int:
    """Print the current standings with risk metrics."""
    try:
        settings = get_settings()

        async def _load():
            async with open_database(settings) as factory:
                async with factory() as db:
                    return await leaderboard_service.get_leaderboard(
                        db, include_metrics=True, metrics_config=settings.metrics
                    )

        entries = asyncio.run(_load())

        print("\n=== Arena Leaderboard ===\n")
        if not entries:
            print("  (No agents. Run 'python -m arena seed' first.)\n")
            return 0

        for entry in entries:
            m = entry.metrics
            print(
                f"  #{entry.rank:<2} {entry.display_name:<12} RM {entry.portfolio_value:>12,.2f} "
                f"({entry.pnl_pct:+.2f}%)  trades {m.total_trades:>3}  "
                f"win {m.win_rate:.0%}  sharpe {m.sharpe_ratio:+.2f}  "
                f"mdd {m.max_drawdown_pct:.1f}%"
            )
        print()
        return 0

    except Exception as e:
        logger.error(f"Failed to load leaderboard: {e}")
        print(f"\n❌ Failed to load leaderboard: {e}\n")
        return 1


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Take today's daily snapshot."""
    _init_logfire()

    try:
        snapshots = asyncio.run(run_daily_snapshot(get_settings()))
        print(f"\n✓ Saved {len(snapshots)} snapshots\n")
        return 0

    except Exception as e:
        logger.error(f"Snapshot failed: {e}", exc_info=True)
        print(f"\n❌ Snapshot failed: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    _init_logfire()

    import uvicorn

    from arena.api import create_app

    uvicorn.run(create_app(get_settings()), host=args.host, port=args.port)
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run sessions and snapshots on the configured cron schedule."""
    try:
        _init_logfire()
        settings = get_settings()

        print("\n=== Arena Scheduler ===\n")
        print(f"Version: {__version__}")
        print(f"Data Directory: {settings.data_dir}\n")

        start_scheduler(settings)
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Arena: AI agents trading on a simulated stock ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Arena {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory, configuration and tables",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_seed = subparsers.add_parser(
        "seed",
        help="Create the competition and roster agents",
    )
    parser_seed.set_defaults(func=cmd_seed)

    parser_run = subparsers.add_parser(
        "run",
        help="Run one trading session",
    )
    parser_run.add_argument(
        "--agent",
        help="Only run this agent (external id or UUID)",
    )
    parser_run.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate actions without writing to the ledger",
    )
    parser_run.add_argument(
        "--force",
        action="store_true",
        help="Run agents that already decided in this hour",
    )
    parser_run.add_argument(
        "--budget",
        type=float,
        metavar="SECONDS",
        help="Wall-clock budget for this session (default: session.budget_seconds)",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.set_defaults(func=cmd_run)

    parser_leaderboard = subparsers.add_parser(
        "leaderboard",
        help="Show standings and risk metrics",
    )
    parser_leaderboard.set_defaults(func=cmd_leaderboard)

    parser_snapshot = subparsers.add_parser(
        "snapshot",
        help="Take today's daily snapshot",
    )
    parser_snapshot.set_defaults(func=cmd_snapshot)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Serve the HTTP API",
    )
    parser_serve.add_argument("--host", default="0.0.0.0")
    parser_serve.add_argument("--port", type=int, default=8000)
    parser_serve.set_defaults(func=cmd_serve)

    parser_schedule = subparsers.add_parser(
        "schedule",
        help="Run sessions on the cron schedule",
    )
    parser_schedule.set_defaults(func=cmd_schedule)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

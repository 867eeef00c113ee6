"""FastAPI server: session trigger, leaderboard and trade log."""

import hmac
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator, Awaitable, Callable, Optional

import logfire
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena import __version__
from arena.config import Settings, get_settings
from arena.database import get_db_session
from arena.pipeline import open_database, run_session
from arena.schemas.leaderboard import LeaderboardEntry
from arena.schemas.session import SessionReport
from arena.schemas.trading import TradeOut
from arena.services.leaderboard import leaderboard_service
from arena.services.ledger import ledger_store

logger = logging.getLogger(__name__)

SessionTrigger = Callable[..., Awaitable[SessionReport]]


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    return bool(provided) and hmac.compare_digest(provided, expected)


def require_cron_secret(request: Request, secret: Optional[str] = Query(None)) -> None:
    """Bearer token or ``?secret=`` must match the configured cron secret."""
    settings: Settings = request.app.state.settings
    if not settings.cron_secret:
        if settings.environment == "production":
            raise HTTPException(status_code=401, detail="Unauthorized")
        return

    auth = request.headers.get("authorization", "")
    bearer = auth[7:] if auth.lower().startswith("bearer ") else None
    if _secret_matches(bearer, settings.cron_secret) or _secret_matches(
        secret, settings.cron_secret
    ):
        return

    logger.warning("Rejected session trigger with bad or missing secret")
    raise HTTPException(status_code=401, detail="Unauthorized")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with get_db_session(factory) as db:
        yield db


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    trigger: Optional[SessionTrigger] = None,
) -> FastAPI:
    """
    Build the API app.

    Args:
        settings: Defaults to ``get_settings()``
        session_factory: Use an existing database instead of opening one at startup
        trigger: Coroutine run by the session endpoint; defaults to ``run_session``
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logfire.info("Starting Arena API server", environment=settings.environment)
        if session_factory is not None:
            app.state.session_factory = session_factory
            yield
        else:
            async with open_database(settings) as factory:
                app.state.session_factory = factory
                yield
        logfire.info("Shutting down Arena API server")

    app = FastAPI(title="Arena API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.trigger = trigger or partial(run_session, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": __version__}

    @app.api_route(
        "/api/sessions/run",
        methods=["GET", "POST"],
        response_model=SessionReport,
        dependencies=[Depends(require_cron_secret)],
    )
    async def trigger_session(
        request: Request,
        agent: Optional[str] = Query(None, description="External id or UUID of one agent"),
        dry_run: bool = Query(False),
        force: bool = Query(False),
        budget_seconds: Optional[float] = Query(
            None, gt=0, description="Wall-clock budget for this pass; defaults to config"
        ),
    ):
        """Run one session pass. Called hourly by the scheduler or an external cron."""
        report = await request.app.state.trigger(
            agent_ref=agent, dry_run=dry_run, force=force, budget_seconds=budget_seconds
        )
        logger.info(
            f"Session {report.cycle_key} {report.state}: "
            f"{report.trades_executed} trades, {len(report.errors)} errors"
        )
        return report

    @app.get("/api/leaderboard", response_model=list[LeaderboardEntry])
    async def get_leaderboard(
        request: Request,
        metrics: bool = Query(True),
        db: AsyncSession = Depends(get_db),
    ):
        return await leaderboard_service.get_leaderboard(
            db, include_metrics=metrics, metrics_config=request.app.state.settings.metrics
        )

    @app.get("/api/agents/{agent_ref}/trades", response_model=list[TradeOut])
    async def get_agent_trades(
        agent_ref: str,
        limit: int = Query(50, ge=1, le=500),
        db: AsyncSession = Depends(get_db),
    ):
        agent = await ledger_store.find_agent(db, agent_ref)
        if agent is None:
            raise HTTPException(status_code=404, detail="Agent not found")
        trades = await ledger_store.list_trades(db, agent.id, limit=limit)
        return [TradeOut.model_validate(t) for t in trades]

    return app

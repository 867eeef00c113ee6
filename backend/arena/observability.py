"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from arena import __version__
from arena.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire with instrumentation for the session engine.

    Must be called ONCE at process startup, before the first session runs.

    Instruments:
    - PydanticAI agents (OpenRouter-backed decision provider)
    - HTTPX clients (provider endpoints, quote source)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="arena",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_pydantic_ai()
        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def instrument_engine(engine) -> None:
    """Attach SQLAlchemy query tracing to an engine when Logfire is active."""
    try:
        logfire.instrument_sqlalchemy(engine=engine.sync_engine)
    except Exception as e:
        logger.debug(f"SQLAlchemy instrumentation skipped: {e}")

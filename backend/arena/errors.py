"""Engine exception hierarchy.

Validation rejections and gate outcomes are values, not exceptions; see
``arena.schemas.trading.RejectionReason`` and ``arena.schemas.session.GateOutcome``.
"""


class ArenaError(Exception):
    """Base exception for engine errors."""


class ConfigurationError(ArenaError):
    """Inconsistent configuration, such as a mode for an unknown agent or an unknown mode."""


class LedgerError(ArenaError):
    """Base exception for ledger store failures."""


class LedgerConflictError(LedgerError):
    """A concurrent writer changed the agent or position since it was read."""


class LedgerWriteError(LedgerError):
    """A validated trade could not be persisted.

    Capital and positions may disagree with the trade log after this error,
    so it is always surfaced as an alert.
    """

    def __init__(self, message: str, agent_id: str | None = None, instrument: str | None = None):
        super().__init__(message)
        self.agent_id = agent_id
        self.instrument = instrument


class SessionTransitionError(ArenaError):
    """Invalid session state machine transition."""

"""Trade validation and execution result types."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from arena.schemas.common import BaseSchema, TradeSide


class RejectionReason(StrEnum):
    HOLD_ACTION = "hold_action"
    INVALID_QUANTITY = "invalid_quantity"
    UNKNOWN_INSTRUMENT = "unknown_instrument"
    NO_PRICE = "no_price"
    BELOW_MINIMUM_NOTIONAL = "below_minimum_notional"
    EXCEEDS_POSITION_CAP = "exceeds_position_cap"
    INSUFFICIENT_CAPITAL = "insufficient_capital"
    INSUFFICIENT_SHARES = "insufficient_shares"
    MODE_VIOLATION = "mode_violation"


class ExecutionStatus(StrEnum):
    EXECUTED = "executed"
    REJECTED = "rejected"
    # Passed validation in a dry run; nothing written
    VALIDATED = "validated"
    # Ledger conflict retries exhausted or persistence failed
    FAILED = "failed"


class ExecutionResult(BaseSchema):
    status: ExecutionStatus
    side: TradeSide
    instrument: str
    quantity: float
    price: float | None = None
    notional: float | None = None
    fee: float | None = None
    realized_pnl: float | None = None
    rejection: RejectionReason | None = None
    message: str = ""
    trade_id: UUID | None = None
    executed_at: datetime | None = None

    @property
    def executed(self) -> bool:
        return self.status == ExecutionStatus.EXECUTED


class TradeOut(BaseSchema):
    """Trade log row as served by the API."""

    id: UUID
    agent_id: UUID
    session_id: UUID | None = None
    instrument: str
    side: str
    quantity: float
    price: float
    fee: float
    notional: float
    net_value: float
    realized_pnl: float | None = None
    leverage: float | None = None
    confidence: float | None = None
    rationale: str | None = None
    executed_at: datetime

"""
Trade Validator & Executor

``validate_action`` is a pure function over an account snapshot; the first
failing check wins. ``TradeExecutor.execute`` re-reads the agent and its
positions, validates, and applies the mutation plus the trade record in one
commit. A per-agent lock serializes trades inside one process and the
agent/position version columns reject lost updates from other processes.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import logfire
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from arena.errors import LedgerConflictError, LedgerWriteError
from arena.models import Competition, Position, TradeRecord
from arena.models.base import utcnow
from arena.retry import RetryPolicy
from arena.schemas.common import TradeSide
from arena.schemas.decision import TradeAction
from arena.schemas.trading import ExecutionResult, ExecutionStatus, RejectionReason
from arena.services.ledger import LedgerStore, ledger_store, to_decimal
from arena.services.rules import ModeRules

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class TradingLimits:
    fee_rate: Decimal
    min_trade_value: Decimal
    max_position_pct: Decimal

    @classmethod
    def from_competition(cls, competition: Competition) -> "TradingLimits":
        return cls(
            fee_rate=to_decimal(competition.fee_rate),
            min_trade_value=to_decimal(competition.min_trade_value),
            max_position_pct=to_decimal(competition.max_position_pct),
        )


@dataclass(frozen=True)
class AccountState:
    """What validation needs to know about one agent, priced at the trade price."""

    cash: Decimal
    portfolio_value: Decimal
    held_quantity: Decimal = ZERO
    held_value: Decimal = ZERO
    initial_capital: Decimal = ZERO
    realized_pnl_today: Decimal = ZERO


@dataclass(frozen=True)
class ValidationOutcome:
    accepted: bool
    reason: Optional[RejectionReason] = None
    message: str = ""
    notional: Decimal = ZERO
    fee: Decimal = ZERO

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, **kwargs) -> "ValidationOutcome":
        return cls(accepted=False, reason=reason, message=message, **kwargs)


def _mode_violation(
    action: TradeAction,
    projected_value: Decimal,
    account: AccountState,
    rules: ModeRules,
) -> Optional[str]:
    if rules.leverage_required:
        leverage = action.leverage
        if leverage is None:
            return f"{rules.label} requires an explicit leverage multiplier"
        if not (rules.min_leverage or 0) <= leverage <= (rules.max_leverage or math.inf):
            return (
                f"leverage {leverage}x outside {rules.min_leverage}x-{rules.max_leverage}x"
            )

    if action.side != TradeSide.BUY:
        return None

    mode_cap = to_decimal(rules.max_position_pct)
    if projected_value > account.portfolio_value * mode_cap:
        return f"{rules.label} caps a single position at {rules.max_position_pct:.0%}"

    if rules.mandatory_stop_loss and action.stop_loss is None:
        return f"{rules.label} requires a stop loss on every buy"

    if rules.max_daily_loss_pct is not None and account.realized_pnl_today < 0:
        limit = account.initial_capital * to_decimal(rules.max_daily_loss_pct)
        if -account.realized_pnl_today >= limit:
            return f"daily loss limit of {rules.max_daily_loss_pct:.0%} reached"

    return None


def validate_action(
    action: TradeAction,
    price: Decimal,
    account: AccountState,
    limits: TradingLimits,
    rules: ModeRules,
) -> ValidationOutcome:
    """Accept or reject one action. Never mutates anything."""
    if action.side == TradeSide.HOLD:
        return ValidationOutcome.reject(RejectionReason.HOLD_ACTION, "hold is not a trade")

    if not math.isfinite(action.quantity) or action.quantity <= 0:
        return ValidationOutcome.reject(
            RejectionReason.INVALID_QUANTITY, f"quantity {action.quantity} is not positive"
        )

    if not action.instrument:
        return ValidationOutcome.reject(RejectionReason.UNKNOWN_INSTRUMENT, "no instrument")

    if price is None or price <= 0:
        return ValidationOutcome.reject(
            RejectionReason.NO_PRICE, f"no price for {action.instrument}"
        )

    quantity = to_decimal(action.quantity)
    notional = quantity * price
    fee = notional * limits.fee_rate
    costs = {"notional": notional, "fee": fee}

    if notional < limits.min_trade_value:
        return ValidationOutcome.reject(
            RejectionReason.BELOW_MINIMUM_NOTIONAL,
            f"notional {notional:.2f} below minimum {limits.min_trade_value:.2f}",
            **costs,
        )

    projected_value = account.held_value + notional
    if action.side == TradeSide.BUY:
        cap = account.portfolio_value * limits.max_position_pct
        if account.portfolio_value <= 0 or projected_value > cap:
            return ValidationOutcome.reject(
                RejectionReason.EXCEEDS_POSITION_CAP,
                f"position would be {projected_value:.2f}, cap is {cap:.2f}",
                **costs,
            )
        required = notional + fee
        if required > account.cash:
            return ValidationOutcome.reject(
                RejectionReason.INSUFFICIENT_CAPITAL,
                f"needs {required:.2f}, has {account.cash:.2f}",
                **costs,
            )
    else:
        if account.held_quantity <= 0 or account.held_quantity < quantity:
            return ValidationOutcome.reject(
                RejectionReason.INSUFFICIENT_SHARES,
                f"holds {account.held_quantity}, asked to sell {quantity}",
                **costs,
            )

    violation = _mode_violation(action, projected_value, account, rules)
    if violation:
        return ValidationOutcome.reject(RejectionReason.MODE_VIOLATION, violation, **costs)

    return ValidationOutcome(accepted=True, **costs)


def _result(
    action: TradeAction,
    status: ExecutionStatus,
    price: Optional[Decimal],
    outcome: Optional[ValidationOutcome] = None,
    **kwargs,
) -> ExecutionResult:
    fields = {}
    if outcome is not None and outcome.notional:
        fields = {"notional": float(outcome.notional), "fee": float(outcome.fee)}
    if outcome is not None and not outcome.accepted:
        fields.update(rejection=outcome.reason, message=outcome.message)
    fields.update(kwargs)
    return ExecutionResult(
        status=status,
        side=action.side,
        instrument=action.instrument,
        quantity=action.quantity,
        price=float(price) if price is not None else None,
        **fields,
    )


class TradeExecutor:
    """
    Applies accepted actions to the ledger.

    One executor is created per session runner; its lock table is not shared
    with other runners, which rely on the version columns instead.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        ledger: LedgerStore = ledger_store,
    ):
        base = retry_policy or RetryPolicy(base_delay=0.05, max_delay=0.5)
        self.retry_policy = base.with_retry_on(LedgerConflictError)
        self.ledger = ledger
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, agent_id: UUID) -> asyncio.Lock:
        if agent_id not in self._locks:
            self._locks[agent_id] = asyncio.Lock()
        return self._locks[agent_id]

    async def execute(
        self,
        db: AsyncSession,
        agent_id: UUID,
        action: TradeAction,
        price: Optional[float | Decimal],
        limits: TradingLimits,
        rules: ModeRules,
        *,
        session_id: Optional[UUID] = None,
        dry_run: bool = False,
        day_start: Optional[datetime] = None,
    ) -> ExecutionResult:
        """
        Validate and, unless rejected or dry-run, apply one action.

        Returns a result for rejections and exhausted conflict retries.
        Raises LedgerWriteError when a validated trade could not be persisted.
        """
        trade_price = to_decimal(price) if price is not None else None

        async with self._lock_for(agent_id):
            try:
                return await self.retry_policy.run(
                    lambda: self._attempt(
                        db, agent_id, action, trade_price, limits, rules,
                        session_id=session_id, dry_run=dry_run, day_start=day_start,
                    ),
                    description=f"trade {action.side} {action.instrument}",
                )
            except LedgerConflictError as e:
                logger.warning(f"Agent {agent_id}: {e}")
                return _result(
                    action, ExecutionStatus.FAILED, trade_price, message=str(e)
                )

    async def _load_account(
        self,
        db: AsyncSession,
        agent_id: UUID,
        instrument: str,
        price: Optional[Decimal],
        rules: ModeRules,
        day_start: Optional[datetime],
    ):
        agent = await self.ledger.get_agent(db, agent_id, fresh=True)
        if agent is None:
            raise LedgerWriteError(f"agent {agent_id} vanished", agent_id=str(agent_id))
        positions = await self.ledger.list_positions(db, agent_id, fresh=True)
        position = next((p for p in positions if p.instrument == instrument), None)

        mark = price if price is not None and price > 0 else None
        holdings = ZERO
        for p in positions:
            p_price = mark if (p.instrument == instrument and mark is not None) else p.last_price
            holdings += p.quantity * p_price

        realized_today = ZERO
        if rules.max_daily_loss_pct is not None and day_start is not None:
            realized_today = await self.ledger.realized_pnl_since(db, agent_id, day_start)

        held_quantity = position.quantity if position else ZERO
        account = AccountState(
            cash=agent.cash,
            portfolio_value=agent.cash + holdings,
            held_quantity=held_quantity,
            held_value=held_quantity * mark if (position and mark is not None) else ZERO,
            initial_capital=agent.initial_capital,
            realized_pnl_today=realized_today,
        )
        return agent, positions, position, account

    async def _attempt(
        self,
        db: AsyncSession,
        agent_id: UUID,
        action: TradeAction,
        price: Optional[Decimal],
        limits: TradingLimits,
        rules: ModeRules,
        *,
        session_id: Optional[UUID],
        dry_run: bool,
        day_start: Optional[datetime],
    ) -> ExecutionResult:
        agent, positions, position, account = await self._load_account(
            db, agent_id, action.instrument, price, rules, day_start
        )
        label = agent.external_id

        outcome = validate_action(action, price, account, limits, rules)
        if not outcome.accepted:
            logger.info(
                f"{label}: rejected {action.side} {action.quantity} "
                f"{action.instrument}: {outcome.reason} ({outcome.message})"
            )
            return _result(action, ExecutionStatus.REJECTED, price, outcome)

        if dry_run:
            return _result(action, ExecutionStatus.VALIDATED, price, outcome)

        now = utcnow()
        quantity = to_decimal(action.quantity)
        notional, fee = outcome.notional, outcome.fee
        realized: Optional[Decimal] = None

        if action.side == TradeSide.BUY:
            if position:
                total = position.quantity + quantity
                position.avg_entry_price = (
                    position.quantity * position.avg_entry_price + quantity * price
                ) / total
                position.quantity = total
                position.last_price = price
            else:
                position = Position(
                    agent_id=agent_id,
                    instrument=action.instrument,
                    quantity=quantity,
                    avg_entry_price=price,
                    last_price=price,
                )
                db.add(position)
                positions.append(position)
            if action.leverage is not None:
                position.leverage = to_decimal(action.leverage)
            if action.stop_loss is not None:
                position.stop_loss = to_decimal(action.stop_loss)
            if action.target_price is not None:
                position.target_price = to_decimal(action.target_price)
            agent.cash = agent.cash - (notional + fee)
            net_value = notional + fee
        else:
            realized = (price - position.avg_entry_price) * quantity - fee
            if quantity == position.quantity:
                await db.delete(position)
                positions.remove(position)
            else:
                position.quantity = position.quantity - quantity
                position.last_price = price
            agent.cash = agent.cash + (notional - fee)
            agent.realized_pnl = agent.realized_pnl + realized
            if realized > 0:
                agent.winning_trades += 1
            net_value = notional - fee

        agent.total_trades += 1
        agent.last_trade_at = now
        agent.portfolio_value = agent.cash + sum(
            (p.quantity * p.last_price for p in positions), ZERO
        )

        trade = self.ledger.append_trade(
            db,
            TradeRecord(
                agent_id=agent_id,
                session_id=session_id,
                instrument=action.instrument,
                side=action.side.value,
                quantity=quantity,
                price=price,
                fee=fee,
                notional=notional,
                net_value=net_value,
                realized_pnl=realized,
                leverage=to_decimal(action.leverage) if action.leverage is not None else None,
                confidence=(
                    to_decimal(action.confidence) if action.confidence is not None else None
                ),
                rationale=action.rationale,
                executed_at=now,
            ),
        )

        try:
            await db.commit()
        except (StaleDataError, IntegrityError) as e:
            await db.rollback()
            raise LedgerConflictError(
                f"concurrent update on {label}/{action.instrument}: {e}"
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            message = (
                f"LEDGER DRIFT: validated {action.side} {quantity} {action.instrument} "
                f"for agent {agent_id} was not persisted: {e}"
            )
            logger.critical(message)
            logfire.error(
                "ledger drift",
                agent_id=str(agent_id),
                instrument=action.instrument,
                side=action.side.value,
                error=str(e),
            )
            raise LedgerWriteError(
                message, agent_id=str(agent_id), instrument=action.instrument
            ) from e

        logger.info(
            f"{label}: {action.side} {quantity} {action.instrument} @ {price} "
            f"(fee {fee:.2f}, realized {realized if realized is not None else '-'})"
        )
        return _result(
            action,
            ExecutionStatus.EXECUTED,
            price,
            outcome,
            realized_pnl=float(realized) if realized is not None else None,
            trade_id=trade.id,
            executed_at=now,
        )

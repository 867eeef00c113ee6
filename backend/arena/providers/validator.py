"""Structural checks applied to every parsed decision before it can trade."""

import math
from typing import Any

from arena.schemas.common import Sentiment, TradeSide
from arena.schemas.decision import Decision, TradeAction

from .exceptions import DecisionValidationError

_SENTIMENTS = {s.value for s in Sentiment}
_SIDES = {s.value for s in TradeSide}


def _analysis_block(payload: dict[str, Any]) -> dict[str, Any] | None:
    # Prompts ask for "analysis"; some models answer with "market_analysis"
    for key in ("analysis", "market_analysis"):
        block = payload.get(key)
        if isinstance(block, dict):
            return block
    return None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float))]


def _check_action(index: int, raw: Any, errors: list[str]) -> TradeAction | None:
    if not isinstance(raw, dict):
        errors.append(f"actions[{index}] is not an object")
        return None

    side = str(raw.get("action", "")).upper()
    if side not in _SIDES:
        errors.append(f"actions[{index}].action must be one of {sorted(_SIDES)}")
        return None

    if side != TradeSide.HOLD:
        code = raw.get("stock_code")
        if not isinstance(code, str) or not code.strip():
            errors.append(f"actions[{index}].stock_code is required")
        if not _is_number(raw.get("quantity")):
            errors.append(f"actions[{index}].quantity must be a number")

    confidence = raw.get("confidence")
    if confidence is not None and (not _is_number(confidence) or not 0 <= confidence <= 100):
        errors.append(f"actions[{index}].confidence must be within 0-100")

    for field in ("target_price", "stop_loss", "leverage"):
        value = raw.get(field)
        if value is not None and not _is_number(value):
            errors.append(f"actions[{index}].{field} must be a number")

    if errors:
        return None

    return TradeAction(
        side=TradeSide(side),
        instrument=str(raw.get("stock_code") or "").strip().upper(),
        quantity=float(raw.get("quantity") or 0),
        rationale=str(raw.get("reasoning") or ""),
        confidence=confidence,
        target_price=raw.get("target_price"),
        stop_loss=raw.get("stop_loss"),
        leverage=raw.get("leverage"),
    )


def validate_decision(payload: dict[str, Any]) -> Decision:
    """Build a Decision or raise DecisionValidationError listing every problem."""
    errors: list[str] = []

    analysis = _analysis_block(payload)
    if analysis is None:
        errors.append("missing analysis object")
        analysis = {}

    sentiment = str(analysis.get("sentiment", "")).upper()
    if sentiment not in _SENTIMENTS:
        errors.append(f"sentiment must be one of {sorted(_SENTIMENTS)}")

    raw_actions = payload.get("actions")
    if not isinstance(raw_actions, list):
        errors.append("actions must be a list")
        raw_actions = []

    actions: list[TradeAction] = []
    for i, raw in enumerate(raw_actions):
        action_errors: list[str] = []
        action = _check_action(i, raw, action_errors)
        errors.extend(action_errors)
        if action is not None:
            actions.append(action)

    if errors:
        raise DecisionValidationError(errors)

    signals = payload.get("trading_signals") if isinstance(payload.get("trading_signals"), dict) else {}
    return Decision(
        sentiment=Sentiment(sentiment),
        top_picks=_string_list(analysis.get("top_picks", signals.get("top_opportunities"))),
        avoid_list=_string_list(analysis.get("avoid_stocks", signals.get("avoid_list"))),
        summary=str(analysis.get("market_summary") or analysis.get("summary") or ""),
        actions=actions,
    )

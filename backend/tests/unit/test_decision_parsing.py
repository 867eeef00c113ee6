"""Tests for extracting and validating decisions from model text."""

import json

import pytest

from arena.providers import (
    DecisionParseError,
    DecisionValidationError,
    extract_json_payload,
    validate_decision,
)
from arena.schemas.common import Sentiment, TradeSide

VALID_PAYLOAD = {
    "analysis": {
        "sentiment": "bullish",
        "market_summary": "Banks lead a broad rally.",
        "top_picks": ["1155", "1295"],
        "avoid_stocks": ["5347"],
    },
    "actions": [
        {
            "action": "buy",
            "stock_code": " 1155 ",
            "quantity": 100,
            "reasoning": "Strong quarter",
            "confidence": 72,
            "stop_loss": 9.2,
        },
        {"action": "HOLD"},
    ],
}


def test_fenced_json_block_is_preferred() -> None:
    text = (
        "Thinking about {the market} first.\n"
        "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```\n"
        "That is my answer."
    )
    assert extract_json_payload(text) == VALID_PAYLOAD


def test_bare_object_inside_prose() -> None:
    text = "Here you go: " + json.dumps({"actions": []}) + " -- good luck"
    assert extract_json_payload(text) == {"actions": []}


def test_unfenced_code_block_still_parses() -> None:
    text = "```\n" + json.dumps({"actions": []}) + "\n```"
    assert extract_json_payload(text) == {"actions": []}


@pytest.mark.parametrize("text", ["", "no braces at all", "{not json}", "[1, 2, 3]"])
def test_unparseable_text_raises(text: str) -> None:
    with pytest.raises(DecisionParseError):
        extract_json_payload(text)


def test_valid_decision_is_normalized() -> None:
    decision = validate_decision(VALID_PAYLOAD)

    assert decision.sentiment == Sentiment.BULLISH
    assert decision.summary == "Banks lead a broad rally."
    assert decision.top_picks == ["1155", "1295"]
    assert decision.avoid_list == ["5347"]

    buy, hold = decision.actions
    assert buy.side == TradeSide.BUY
    assert buy.instrument == "1155"
    assert buy.quantity == 100.0
    assert buy.stop_loss == 9.2
    assert hold.is_hold


def test_market_analysis_key_is_accepted() -> None:
    payload = {
        "market_analysis": {"sentiment": "NEUTRAL"},
        "trading_signals": {"top_opportunities": ["7113"], "avoid_list": ["0166"]},
        "actions": [],
    }
    decision = validate_decision(payload)
    assert decision.sentiment == Sentiment.NEUTRAL
    assert decision.top_picks == ["7113"]
    assert decision.avoid_list == ["0166"]
    assert decision.actions == []


def test_all_problems_are_reported_together() -> None:
    payload = {
        "analysis": {"sentiment": "euphoric"},
        "actions": [
            {"action": "short", "stock_code": "1155", "quantity": 10},
            {"action": "BUY", "stock_code": "", "quantity": "lots"},
            {"action": "SELL", "stock_code": "1155", "quantity": 5, "confidence": 140},
        ],
    }
    with pytest.raises(DecisionValidationError) as excinfo:
        validate_decision(payload)

    errors = excinfo.value.errors
    assert len(errors) == 5
    assert any("sentiment" in e for e in errors)
    assert any("actions[0].action" in e for e in errors)
    assert any("actions[1].stock_code" in e for e in errors)
    assert any("actions[1].quantity" in e for e in errors)
    assert any("actions[2].confidence" in e for e in errors)


def test_missing_structure_is_rejected() -> None:
    with pytest.raises(DecisionValidationError) as excinfo:
        validate_decision({"actions": "buy everything"})
    assert "missing analysis object" in excinfo.value.errors
    assert "actions must be a list" in excinfo.value.errors


def test_boolean_quantity_is_not_a_number() -> None:
    payload = {
        "analysis": {"sentiment": "BEARISH"},
        "actions": [{"action": "SELL", "stock_code": "1155", "quantity": True}],
    }
    with pytest.raises(DecisionValidationError):
        validate_decision(payload)

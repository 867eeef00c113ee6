"""Extract the decision JSON object from free-form model text."""

import json
import re
from typing import Any

from .exceptions import DecisionParseError

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_OUTER_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_payload(text: str) -> dict[str, Any]:
    """Return the first decodable JSON object in ``text``.

    Fenced ```json blocks win; otherwise the span from the first ``{`` to the
    last ``}`` is tried.
    """
    if not text:
        raise DecisionParseError("empty response")

    candidates = [m.group(1) for m in _FENCED_JSON.finditer(text)]
    outer = _OUTER_OBJECT.search(text)
    if outer:
        candidates.append(outer.group(0))

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload

    raise DecisionParseError("no JSON object found in response")

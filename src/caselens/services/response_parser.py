"""Turn raw classifier text into a verdict (or a parse failure)."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Union

from caselens.models.domain import ParseFailure, ParseSuccess

ParseOutcome = Union[ParseSuccess, ParseFailure]

_CONTROL_TOKEN = re.compile(r"<\|[^|]+\|>")
_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_FIRST_OBJECT = re.compile(r"\{[^{}]*\}", re.DOTALL)

_SPELLED_DIGITS = {
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
}
_SPELLED_DECIMAL = re.compile(r"0\.\s*(" + "|".join(_SPELLED_DIGITS) + r")\b", re.IGNORECASE)

_TRUE_WORDS = {"true", "yes", "1"}
_FALSE_WORDS = {"false", "no", "0"}


def repair_json(text: str) -> str:
    """Fix decimals some models spell out, e.g. '0. nine' -> '0.9'."""
    return _SPELLED_DECIMAL.sub(lambda m: "0." + _SPELLED_DIGITS[m.group(1).lower()], text)


def clean_response(raw: str) -> str:
    text = _CONTROL_TOKEN.sub("", raw).strip()
    text = _CODE_FENCE.sub("", text).strip()
    return repair_json(text)


def _load_object(text: str) -> Optional[dict]:
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return data

    match = _FIRST_OBJECT.search(text)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def _coerce_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return None
    return conf if 0.0 <= conf <= 1.0 else None


def _coerce_indicators(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def parse_response(raw: Optional[str]) -> ParseOutcome:
    """
    Extract {detected, confidence, indicators, rationale} from a model reply.

    Never raises: anything that does not yield a boolean verdict comes back
    as ParseFailure with a message saying why.
    """
    if raw is None or not str(raw).strip():
        return ParseFailure(message="Empty response")

    text = clean_response(str(raw))
    if not text:
        return ParseFailure(message="Response contained only control tokens")

    data = _load_object(text)
    if data is None:
        return ParseFailure(message="Failed to parse JSON from response content")

    detected = _coerce_bool(data.get("detected"))
    if detected is None:
        return ParseFailure(message=f"No usable 'detected' value: {data.get('detected')!r}")

    rationale = data.get("rationale")
    return ParseSuccess(
        detected=detected,
        confidence=_coerce_confidence(data.get("confidence")),
        indicators=_coerce_indicators(data.get("indicators")),
        rationale="" if rationale is None else str(rationale),
    )

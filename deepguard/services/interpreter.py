# deepguard/services/interpreter.py
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from deepguard.core.heuristics import fallback_verdict
from deepguard.core.schemas import Verdict


def _json_candidate(raw_text: str) -> Optional[str]:
    # Greedy: first "{" to last "}", so JSON wrapped in prose or markdown fences still matches.
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end < start:
        return None
    return raw_text[start:end + 1]


class ParseStatus(str, Enum):
    PARSED = "parsed"
    INVALID_SHAPE = "invalid_shape"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParseResult:
    status: ParseStatus
    verdict: Optional[Verdict] = None
    reason: str = ""


def parse_verdict(raw_text: str) -> ParseResult:
    candidate = _json_candidate(raw_text)
    if candidate is None:
        return ParseResult(ParseStatus.UNPARSEABLE, reason="No JSON found in AI response")

    try:
        payload: Any = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        return ParseResult(ParseStatus.UNPARSEABLE, reason=str(e))

    if not isinstance(payload, dict):
        return ParseResult(ParseStatus.INVALID_SHAPE, reason="JSON is not an object")

    try:
        verdict = Verdict.model_validate(payload)
    except ValidationError as e:
        return ParseResult(ParseStatus.INVALID_SHAPE, reason=str(e))

    return ParseResult(ParseStatus.PARSED, verdict=verdict)


def interpret(raw_text: str) -> Verdict:
    """
    Turn the model's reply into a Verdict. Never raises: anything that is
    not a valid Verdict object goes through the keyword fallback.
    """
    if not isinstance(raw_text, str):
        raw_text = ""

    result = parse_verdict(raw_text)
    if result.status is ParseStatus.PARSED:
        return result.verdict

    logger.warning(f"Failed to parse AI response ({result.status.value}): {result.reason}")
    return fallback_verdict(raw_text)

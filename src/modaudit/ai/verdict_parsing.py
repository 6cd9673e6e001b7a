"""Parse the model's response text into a :class:`Verdict`."""

from __future__ import annotations

import json
import math
from typing import Any, Dict

import jsonschema
from jsonschema import ValidationError

from modaudit.ai.response_schema import VALIDATION_SCHEMA
from modaudit.datatypes.action_datatypes import Verdict
from modaudit.exceptions import InvalidResponseError
from modaudit.util.logger import get_logger

logger = get_logger("verdict_parsing")


def _extract_json_payload(raw: str) -> Any:
    try:
        return json.loads(raw.strip())
    except json.JSONDecodeError as exc:
        logger.warning("[PARSE] JSON decoding failed: %s", exc)
        raise InvalidResponseError(f"Response is not valid JSON: {exc}") from exc


def clamp_confidence(value: Any) -> float:
    """
    Coerce confidence into [0.0, 1.0].

    Raises:
        InvalidResponseError: If the value is a boolean, not representable as
            a float, NaN or infinite.
    """
    if isinstance(value, bool):
        raise InvalidResponseError("Confidence must be a number, got a boolean")
    try:
        confidence = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidResponseError(f"Confidence is not a usable number: {exc}") from exc
    if not math.isfinite(confidence):
        raise InvalidResponseError(f"Confidence must be finite, got {value!r}")
    if confidence < 0.0 or confidence > 1.0:
        clamped = min(1.0, max(0.0, confidence))
        logger.warning("[PARSE] Confidence %s out of range, clamped to %s", confidence, clamped)
        return clamped
    return confidence


def parse_verdict(response_text: str | None) -> Verdict:
    """
    Validate and normalize a verdict response body.

    Args:
        response_text: The message content of the single completion choice.

    Raises:
        InvalidResponseError: If the body is empty, not JSON, or fails type
            validation.
    """
    if response_text is None or not response_text.strip():
        raise InvalidResponseError("Empty response content")

    payload = _extract_json_payload(response_text)
    if not isinstance(payload, dict):
        raise InvalidResponseError(f"Response must be a JSON object, got {type(payload).__name__}")

    try:
        jsonschema.validate(instance=payload, schema=VALIDATION_SCHEMA)
    except ValidationError as exc:
        logger.error("[PARSE] Schema validation failed: %s", exc.message)
        raise InvalidResponseError(f"Invalid verdict: {exc.message}") from exc

    payload_dict: Dict[str, Any] = payload
    verdict = Verdict(
        confidence=clamp_confidence(payload_dict["confidence"]),
        actions=tuple(payload_dict["actions"]),
        conclusion=payload_dict["conclusion"].strip(),
    )
    logger.debug("[PARSE] Verdict confidence=%.2f actions=%s", verdict.confidence, list(verdict.actions))
    return verdict

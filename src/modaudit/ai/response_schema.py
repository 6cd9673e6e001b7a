"""JSON schemas for the audit verdict.

``VERDICT_SCHEMA`` is sent to the endpoint as a strict structured-output
contract. ``VALIDATION_SCHEMA`` is what responses are checked against: the
same shape without the action enum, so tags the pipeline does not know still
reach the result handler and get recorded as ``unknown``.
"""

from __future__ import annotations

import copy
from typing import Any, Dict

from openai.types.shared_params.response_format_json_schema import ResponseFormatJSONSchema

from modaudit.datatypes.action_datatypes import VERDICT_ACTION_TAGS

SCHEMA_NAME = "content_audit_verdict"

VERDICT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "confidence": {
            "type": "number",
            "description": "Violation certainty between 0.0 and 1.0",
        },
        "actions": {
            "type": "array",
            "items": {"type": "string", "enum": list(VERDICT_ACTION_TAGS)},
            "description": "Actions to take",
        },
        "conclusion": {
            "type": "string",
            "description": "Brief explanation of the decision",
        },
    },
    "required": ["confidence", "actions", "conclusion"],
    "additionalProperties": False,
}


def build_validation_schema() -> Dict[str, Any]:
    schema = copy.deepcopy(VERDICT_SCHEMA)
    schema["properties"]["actions"]["items"] = {"type": "string"}
    # Responses may carry extra keys; only the three required ones are read
    schema["additionalProperties"] = True
    return schema


VALIDATION_SCHEMA: Dict[str, Any] = build_validation_schema()


def build_response_format() -> ResponseFormatJSONSchema:
    return ResponseFormatJSONSchema(
        type="json_schema",
        json_schema={
            "name": SCHEMA_NAME,
            "strict": True,
            "schema": VERDICT_SCHEMA,
        },
    )

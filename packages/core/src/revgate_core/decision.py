"""Validation of the model's structured review decision.

The model must answer by calling ``finalize_review`` exactly once. A missing
or repeated call, malformed JSON, a schema violation, or blockers under a
``pass`` are validation failures. They fail the job and are never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import ValidationError

from revgate_core.errors import DecisionValidationError
from revgate_core.models import FINAL_REVIEW_ADAPTER, BlockReview, PassReview

logger = logging.getLogger(__name__)

DECISION_FUNCTION = "finalize_review"

DECISION_PARAMETERS: dict = {
    "type": "object",
    "properties": {
        "status": {"type": "string", "enum": ["pass", "block"]},
        "blockers": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["rule", "title", "file", "line_start", "line_end", "why"],
                "properties": {
                    "rule": {"type": "string"},
                    "title": {"type": "string"},
                    "file": {"type": "string"},
                    "line_start": {"type": "integer"},
                    "line_end": {"type": "integer"},
                    "why": {"type": "string"},
                    "suggested_fix": {"type": "string"},
                },
            },
        },
        "notes": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["status", "blockers", "notes"],
}

DECISION_DESCRIPTION = "Return the final review decision"

FINALIZE_REVIEW_TOOL: dict = {
    "type": "function",
    "function": {
        "name": DECISION_FUNCTION,
        "description": DECISION_DESCRIPTION,
        "parameters": DECISION_PARAMETERS,
    },
}


@dataclass(frozen=True)
class ToolCall:
    """A provider-neutral function call: name plus its raw JSON arguments."""

    name: str
    arguments: str


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()))
        problems.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(problems)


def parse_decision(arguments: str) -> PassReview | BlockReview:
    """Parse and validate the raw JSON argument string of a decision call."""
    try:
        return FINAL_REVIEW_ADAPTER.validate_json(arguments)
    except ValidationError as e:
        raise DecisionValidationError(f"Invalid {DECISION_FUNCTION} payload: {_describe(e)}") from e


def validate_decision(tool_calls: Sequence[ToolCall]) -> PassReview | BlockReview:
    """Return the validated decision from a model response's function calls."""
    decision_calls = [c for c in tool_calls if c.name == DECISION_FUNCTION]
    if not decision_calls:
        names = ", ".join(c.name for c in tool_calls) or "none"
        raise DecisionValidationError(f"Model response did not call {DECISION_FUNCTION} (calls: {names})")
    if len(decision_calls) > 1:
        raise DecisionValidationError(f"Model called {DECISION_FUNCTION} {len(decision_calls)} times; expected once")
    if len(tool_calls) > 1:
        logger.warning("Ignoring %d extra function call(s) in model response", len(tool_calls) - 1)
    return parse_decision(decision_calls[0].arguments)

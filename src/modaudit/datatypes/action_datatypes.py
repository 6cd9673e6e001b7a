"""
Action types, verdicts and execution records.

This module defines the ActionType enum, the Verdict parsed from the model
response and the ExecutionLog the result handler writes back onto an audit
log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple


class ActionType(Enum):
    """Enumeration of policy actions the model may request."""

    NONE = "none"
    HIDE = "hide"
    UNAPPROVE = "unapprove"
    SUSPEND = "suspend"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_tag(cls, tag: str) -> "ActionType | None":
        """Return the action for a tag, or None for tags the pipeline does not know."""
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return None


# Tags offered to the model through the response schema
VERDICT_ACTION_TAGS: Tuple[str, ...] = ("none", "hide", "suspend", "delete", "unapprove")


def normalize_actions(actions: Iterable[Any]) -> Tuple[str, ...]:
    """Lower-case, de-duplicate (keeping order) and default to ``("none",)``."""
    seen: List[str] = []
    for action in actions:
        tag = str(action).strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen) or ("none",)


@dataclass(frozen=True, slots=True)
class Verdict:
    """The model's structured judgment.

    Attributes:
        confidence: Violation certainty in [0.0, 1.0].
        actions: Requested action tags, never empty.
        conclusion: Human-readable explanation.
    """

    confidence: float
    actions: Tuple[str, ...]
    conclusion: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", normalize_actions(self.actions))

    @property
    def violation_actions(self) -> Tuple[str, ...]:
        return tuple(action for action in self.actions if action != ActionType.NONE.value)


class ActionStatus(Enum):
    """Outcome of one executed action."""

    SUCCESS = "success"
    FAILED = "failed"
    UNKNOWN = "unknown"


class Decision(Enum):
    """Overall result handler decision."""

    APPROVED = "approved"
    VIOLATED = "violated"


@dataclass(slots=True)
class ActionOutcome:
    """What happened when one requested action was executed."""

    action: str
    status: ActionStatus
    timestamp: str
    details: str | None = None
    error: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "action": self.action,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.details is not None:
            entry["details"] = self.details
        if self.error is not None:
            entry["error"] = self.error
        entry.update(self.extra)
        return entry


@dataclass(slots=True)
class ExecutionLog:
    """Structured record of what the result handler did with a verdict."""

    timestamp: str
    threshold: float
    confidence: float
    llm_actions: List[str]
    decision: Decision | None = None
    reason: str | None = None
    content_approved: bool | None = None
    actions_executed: List[ActionOutcome] = field(default_factory=list)
    message_sent: bool | None = None
    message_error: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "threshold": self.threshold,
            "confidence": self.confidence,
            "llm_actions": list(self.llm_actions),
            "decision": self.decision.value if self.decision else None,
            "actions_executed": [outcome.to_dict() for outcome in self.actions_executed],
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.content_approved is not None:
            data["content_approved"] = self.content_approved
        if self.message_sent is not None:
            data["message_sent"] = self.message_sent
        if self.message_error is not None:
            data["message_error"] = self.message_error
        data.update(self.extra)
        return data

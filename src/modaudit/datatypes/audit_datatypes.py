"""
Audit log record and its lifecycle states.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from modaudit.datatypes.content_datatypes import ContentType

JSON_SCHEMA_FORMAT = "json_schema"


class AuditStatus(Enum):
    """Lifecycle state of an audit log."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    def __str__(self) -> str:
        return self.value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AuditLog:
    """One moderation-review attempt and its outcome.

    A log is created ``pending`` when a job starts and is updated in place as
    extraction, the API request and the API response complete. It references
    the audited content and its owner by id only.
    """

    content_type: ContentType
    content_id: int | None
    user_id: int
    id: int | None = None
    audited_content: Dict[str, Any] | None = None
    api_request: Dict[str, Any] | None = None
    api_response: Dict[str, Any] | None = None
    response_format_version: str = JSON_SCHEMA_FORMAT
    confidence: float | None = None
    actions_taken: List[str] = field(default_factory=list)
    conclusion: str | None = None
    execution_log: Dict[str, Any] | None = None
    status: AuditStatus = AuditStatus.PENDING
    retry_count: int = 0
    error_message: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status is AuditStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status is AuditStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status is AuditStatus.FAILED

    def touch(self) -> None:
        self.updated_at = utcnow()

    def mark_pending(self) -> None:
        self.status = AuditStatus.PENDING
        self.touch()

    def mark_completed(self) -> None:
        self.status = AuditStatus.COMPLETED
        self.error_message = None
        self.touch()

    def mark_failed(self, error: str, count_attempt: bool = True) -> None:
        """Record a failure; ``count_attempt`` consumes one retry."""
        self.status = AuditStatus.FAILED
        self.error_message = error
        if count_attempt:
            self.retry_count += 1
        self.touch()

    def mark_retrying(self) -> None:
        self.status = AuditStatus.RETRYING
        self.touch()

    def reset_for_rerun(self) -> None:
        """Clear the previous attempt's request and outcome, keeping the content snapshot."""
        self.api_request = None
        self.api_response = None
        self.response_format_version = JSON_SCHEMA_FORMAT
        self.confidence = None
        self.actions_taken = []
        self.conclusion = None
        self.execution_log = None
        self.error_message = None
        self.mark_pending()

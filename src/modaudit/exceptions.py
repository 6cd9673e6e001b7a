"""
Error taxonomy for the audit pipeline.

Only ContentNotFoundError and ConfigurationError stop an audit job without
consuming its retry budget. Every other AuditError raised from a job is
retried by the queue until the budget is exhausted.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for every error raised by modaudit."""


class ContentNotFoundError(AuditError):
    """The audited post, discussion, user or file no longer exists.

    Usually the content was deleted between enqueue and execution. It will
    never reappear, so the job fails immediately without a retry.
    """

    def __init__(self, content_type: str, content_id: int | None) -> None:
        super().__init__(f"{content_type} #{content_id} not found")
        self.content_type = content_type
        self.content_id = content_id


class TransportError(AuditError):
    """Network or timeout failure talking to the LLM endpoint."""


class InvalidResponseError(AuditError):
    """The LLM answered with an empty, non-JSON or incomplete body."""


class ConfigurationError(AuditError):
    """The LLM client is missing an API key or model name."""


class InvalidContentError(AuditError):
    """Structurally invalid content or request (wrong entity, bad change set)."""


class PermissionDeniedError(AuditError):
    """The acting user lacks the permission for an administrative operation."""

    def __init__(self, permission: str) -> None:
        super().__init__(f"Missing permission: {permission}")
        self.permission = permission

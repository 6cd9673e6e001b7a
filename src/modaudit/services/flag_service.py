"""Moderation flags that surface audit state to human moderators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from modaudit.database.database import Database
from modaudit.database.flag_repo import FlagRecord
from modaudit.datatypes.audit_datatypes import AuditLog
from modaudit.datatypes.content_datatypes import Discussion, Post
from modaudit.util.logger import get_logger

logger = get_logger("flag_service")

FLAG_TYPE = "openai-audit"


class FlagStage(Enum):
    PRE_APPROVAL = "pre-approval"
    AUDIT = "audit"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class FlagLabels:
    """Display strings for flag fields. Blank overrides fall back to these defaults."""

    reason: str = "Flagged by AI content audit"
    pending: str = "Pending AI content audit"
    audit_log: str = "Audit log"
    confidence: str = "Confidence"
    no_conclusion: str = "No conclusion available"

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any] | None) -> "FlagLabels":
        defaults = cls()
        values = {
            name: str(overrides[name]).strip()
            for name in cls.__slots__
            if overrides and overrides.get(name) and str(overrides[name]).strip()
        }
        return cls(**{name: values.get(name, getattr(defaults, name)) for name in cls.__slots__})


def resolve_post(content: Any) -> Post | None:
    """A post flags itself; a discussion flags its first post."""
    if isinstance(content, Post):
        return content
    if isinstance(content, Discussion):
        return content.first_post
    return None


class FlagService:
    def __init__(self, database: Database, labels: FlagLabels | None = None) -> None:
        self.database = database
        self.labels = labels or FlagLabels()

    def format_reason_detail(self, stage: FlagStage, log: AuditLog | None) -> str:
        """
        Render the flag's reason detail.

        Pre-approval (or a missing log) gets the fixed pending message. The
        audit stage renders ``[<label> #<id>] <conclusion>\\n<label>: <pct>%``.
        """
        if stage is FlagStage.PRE_APPROVAL or log is None:
            return self.labels.pending

        conclusion = log.conclusion or self.labels.no_conclusion
        percent = f"{(log.confidence or 0.0) * 100:.1f}"
        return f"[{self.labels.audit_log} #{log.id}] {conclusion}\n{self.labels.confidence}: {percent}%"

    async def create_flag(
        self, content: Any, log: AuditLog | None = None, stage: FlagStage = FlagStage.AUDIT
    ) -> FlagRecord | None:
        """
        Create the audit flag for ``content`` unless one already exists.

        Returns:
            FlagRecord | None: The new or pre-existing flag, or None when the
            content has no flaggable post or the store failed.
        """
        post = resolve_post(content)
        if post is None:
            logger.warning("[FLAG SERVICE] No flaggable post for %s", type(content).__name__)
            return None

        try:
            flag, created = await self.database.create_flag(
                post_id=post.id,
                flag_type=FLAG_TYPE,
                reason=self.labels.reason,
                reason_detail=self.format_reason_detail(stage, log),
                audit_log_id=log.id if log is not None else None,
            )
        except Exception as exc:
            logger.error("[FLAG SERVICE] Failed to create flag for post #%s: %s", post.id, exc)
            return None

        if created:
            logger.info("[FLAG SERVICE] Created %s flag #%s on post #%s", stage, flag.id, post.id)
        else:
            logger.debug("[FLAG SERVICE] Flag #%s already exists on post #%s", flag.id, post.id)
        return flag

    async def delete_flags(self, content: Any) -> int:
        """Remove audit flags from ``content``; returns how many were deleted."""
        post = resolve_post(content)
        if post is None:
            return 0

        try:
            deleted = await self.database.delete_flags(post.id, FLAG_TYPE)
        except Exception as exc:
            logger.error("[FLAG SERVICE] Failed to delete flags for post #%s: %s", post.id, exc)
            return 0

        if deleted:
            logger.info("[FLAG SERVICE] Deleted %d flag(s) from post #%s", deleted, post.id)
        return deleted

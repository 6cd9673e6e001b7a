"""
Interpret a completed audit log and apply the requested policy actions.

Decision flow:

1. ``confidence < threshold``: approved (``confidence_below_threshold``)
2. only ``none`` requested: approved (``no_violations_found``)
3. otherwise violated: every action runs in isolation and records its own
   outcome, then one notice goes to the content owner

Approval only flips content that is currently unapproved. The execution log
is written once, after everything else.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from modaudit.configuration.audit_settings import AuditSettings
from modaudit.database.database import Database
from modaudit.datatypes.action_datatypes import (
    ActionOutcome,
    ActionStatus,
    ActionType,
    Decision,
    ExecutionLog,
    normalize_actions,
)
from modaudit.datatypes.audit_datatypes import AuditLog
from modaudit.datatypes.content_datatypes import (
    AuditSubject,
    Discussion,
    Post,
    ProfileField,
    UploadedFile,
    UserProfile,
)
from modaudit.interfaces import ContentStore, EventDispatcher, UserSuspended
from modaudit.services.flag_service import FlagService, FlagStage
from modaudit.services.message_notifier import MessageNotifier
from modaudit.util.logger import get_logger

logger = get_logger("result_handler")

DEFAULT_VIOLATION_REASON = "Content may violate the community guidelines"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ResultHandler:
    """Executes the verdict stored on a completed :class:`AuditLog`."""

    def __init__(
        self,
        settings: AuditSettings,
        database: Database,
        content_store: ContentStore,
        notifier: MessageNotifier,
        flag_service: FlagService | None = None,
        events: EventDispatcher | None = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.content_store = content_store
        self.notifier = notifier
        self.flag_service = flag_service
        self.events = events

    async def handle(self, log: AuditLog, user: UserProfile, content: AuditSubject) -> ExecutionLog:
        """
        Apply the verdict on ``log`` and persist the execution log.

        Never raises for action or notification failures; those are recorded
        on the execution log instead.
        """
        threshold = self.settings.confidence_threshold
        confidence = log.confidence if log.confidence is not None else 0.0
        actions = normalize_actions(log.actions_taken)

        execution = ExecutionLog(
            timestamp=_now().isoformat(),
            threshold=threshold,
            confidence=confidence,
            llm_actions=list(log.actions_taken),
        )

        if confidence < threshold:
            execution.decision = Decision.APPROVED
            execution.reason = "confidence_below_threshold"
            await self._approve(content, execution)
            logger.info(
                "[RESULT HANDLER] Log #%s confidence %.2f below threshold %.2f; approved",
                log.id, confidence, threshold,
            )
        elif all(action == ActionType.NONE.value for action in actions):
            execution.decision = Decision.APPROVED
            execution.reason = "no_violations_found"
            await self._approve(content, execution)
            logger.info("[RESULT HANDLER] Log #%s passed audit; approved", log.id)
        else:
            execution.decision = Decision.VIOLATED
            for action in actions:
                execution.actions_executed.append(await self._execute(action, log, user, content))
            await self._notify(log, user, confidence, execution)

        log.execution_log = execution.to_dict()
        await self.database.save_log(log)
        return execution

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def _approve(self, content: AuditSubject, execution: ExecutionLog) -> None:
        if not isinstance(content, (Post, Discussion)):
            return

        if self.flag_service is not None:
            removed = await self.flag_service.delete_flags(content)
            if removed:
                execution.extra["flags_removed"] = removed

        if content.is_approved:
            execution.content_approved = False
            execution.extra["approval"] = "already_approved"
            return

        try:
            await self.content_store.approve(content)
        except Exception as exc:
            logger.error("[RESULT HANDLER] Failed to approve %s #%s: %s", type(content).__name__, content.id, exc)
            execution.content_approved = False
            execution.extra["approval_error"] = str(exc)
            return

        content.is_approved = True
        execution.content_approved = True
        execution.extra["content_type"] = "post" if isinstance(content, Post) else "discussion"
        execution.extra["content_id"] = content.id
        logger.info("[RESULT HANDLER] Approved %s #%s after passing audit", type(content).__name__, content.id)

    # ------------------------------------------------------------------
    # Violation actions
    # ------------------------------------------------------------------

    async def _execute(self, action: str, log: AuditLog, user: UserProfile, content: AuditSubject) -> ActionOutcome:
        outcome = ActionOutcome(action=action, status=ActionStatus.SUCCESS, timestamp=_now().isoformat())
        try:
            match ActionType.from_tag(action):
                case ActionType.HIDE | ActionType.UNAPPROVE:
                    await self._hide(log, content, outcome)
                case ActionType.SUSPEND:
                    await self._suspend(log, user, outcome)
                case ActionType.NONE:
                    outcome.details = "no_action_taken"
                case ActionType.DELETE:
                    outcome.status = ActionStatus.UNKNOWN
                    outcome.error = "unsupported_action"
                    logger.warning("[RESULT HANDLER] Log #%s requested unsupported action 'delete'", log.id)
                case None:
                    outcome.status = ActionStatus.UNKNOWN
                    outcome.error = "unknown_action_type"
                    logger.warning("[RESULT HANDLER] Log #%s requested unknown action '%s'", log.id, action)
        except Exception as exc:
            outcome.status = ActionStatus.FAILED
            outcome.error = str(exc)
            logger.exception("[RESULT HANDLER] Action '%s' failed for log #%s", action, log.id)
        return outcome

    async def _hide(self, log: AuditLog, content: AuditSubject, outcome: ActionOutcome) -> None:
        match content:
            case Post() | Discussion():
                await self.content_store.unapprove(content)
                content.is_approved = False
                outcome.details = "content_hidden"
                outcome.extra.update({"content_type": log.content_type.value, "content_id": log.content_id})
                logger.info("[RESULT HANDLER] Hid %s #%s", log.content_type, log.content_id)
                if self.flag_service is not None:
                    flag = await self.flag_service.create_flag(content, log, FlagStage.AUDIT)
                    if flag is not None:
                        outcome.extra["flag_id"] = flag.id
            case UserProfile():
                await self._revert_profile(log, content, outcome)
            case UploadedFile():
                await self.content_store.unapprove(content)
                outcome.details = "upload_hidden"
                outcome.extra.update({"content_type": log.content_type.value, "content_id": log.content_id})

    async def _revert_profile(self, log: AuditLog, user: UserProfile, outcome: ActionOutcome) -> None:
        """Reset the audited profile fields to their configured defaults."""
        audited = (log.audited_content or {}).get("content") or {}
        reverted: Dict[str, Dict[str, Any]] = {}

        for key in audited:
            match ProfileField.parse(str(key)):
                case ProfileField.DISPLAY_NAME:
                    default = self.settings.default_display_name or user.username
                    reverted["display_name"] = {"old": user.display_name, "new": default}
                    await self.content_store.set_profile_field(user, "display_name", default)
                    user.display_name = default
                case ProfileField.BIO if user.bio is not None:
                    default = self.settings.default_bio
                    reverted["bio"] = {"old": user.bio, "new": default}
                    await self.content_store.set_profile_field(user, "bio", default)
                    user.bio = default
                case ProfileField.AVATAR:
                    reverted["avatar"] = {"old": user.avatar_url, "new": None}
                    await self.content_store.set_profile_field(user, "avatar", None)
                    user.avatar_url = None
                case ProfileField.COVER if user.cover is not None:
                    reverted["cover"] = {"old": user.cover, "new": None}
                    await self.content_store.set_profile_field(user, "cover", None)
                    user.cover = None

        if reverted:
            outcome.details = "profile_reverted"
            outcome.extra.update({"user_id": user.id, "reverted_fields": reverted})
            logger.info("[RESULT HANDLER] Reverted profile fields %s for user #%s", sorted(reverted), user.id)
        else:
            outcome.details = "no_changes_needed"

    async def _suspend(self, log: AuditLog, user: UserProfile, outcome: ActionOutcome) -> None:
        days = self.settings.suspend_days
        reason = log.conclusion or DEFAULT_VIOLATION_REASON
        until = _now() + timedelta(days=days)

        await self.content_store.suspend(user, until, reason, reason)
        user.suspended_until = until
        user.suspend_reason = reason
        user.suspend_message = reason

        outcome.details = "user_suspended"
        outcome.extra.update(
            {
                "user_id": user.id,
                "suspend_days": days,
                "suspend_reason": reason,
                "suspended_until": until.isoformat(),
            }
        )
        logger.info("[RESULT HANDLER] Suspended user #%s until %s", user.id, until.isoformat())

        if self.events is not None:
            try:
                await self.events.dispatch(
                    UserSuspended(user_id=user.id, suspended_until=until, reason=reason, audit_log_id=log.id)
                )
            except Exception as exc:
                logger.warning("[RESULT HANDLER] Failed to dispatch suspension event: %s", exc)

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    async def _notify(self, log: AuditLog, user: UserProfile, confidence: float, execution: ExecutionLog) -> None:
        if not execution.actions_executed:
            return
        conclusion = log.conclusion or DEFAULT_VIOLATION_REASON
        try:
            sent = await self.notifier.send_violation_notice(user, log.content_type.value, [conclusion], confidence)
        except Exception as exc:
            execution.message_sent = False
            execution.message_error = str(exc)
            logger.error("[RESULT HANDLER] Failed to notify user #%s: %s", user.id, exc)
            return
        execution.message_sent = sent

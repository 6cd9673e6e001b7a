"""
Administrative operations on audit logs: browse, inspect, retry and
trigger audits by hand.

Results are plain JSON-ready dicts in the JSON:API shape the forum's admin
frontend consumes. Request snapshots (audited content, API request and
response) are only included for actors allowed to see them.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from modaudit.database.audit_log_repo import SORTABLE_COLUMNS, AuditLogQuery
from modaudit.database.database import Database
from modaudit.datatypes.audit_datatypes import AuditLog, AuditStatus
from modaudit.datatypes.content_datatypes import ContentType, UserProfile
from modaudit.exceptions import ContentNotFoundError, InvalidContentError, PermissionDeniedError
from modaudit.interfaces import Actor, ContentStore
from modaudit.services.audit_queue_service import AuditQueueService
from modaudit.services.audit_trigger import AVATAR_DISK, COVER_DISK, local_file_marker
from modaudit.util.logger import get_logger

logger = get_logger("audit_admin")

VIEW_AUDIT_LOGS = "view_audit_logs"
VIEW_FULL_AUDIT_LOGS = "view_full_audit_logs"
RETRY_AUDIT = "retry_audit"
MANUAL_AUDIT = "manual_audit"

DEFAULT_SORT = "-createdAt"
DEFAULT_LIMIT = 20

MANUAL_AUDIT_TYPES = (
    "post",
    "discussion",
    "user_profile_username",
    "user_profile_avatar",
    "user_profile_cover",
)


def parse_sort(sort: str | None) -> tuple[str, bool]:
    """Translate ``[+-]createdAt|confidence|status`` into (column, descending).

    Unknown fields fall back to the default ``-createdAt`` ordering.
    """
    sort = (sort or DEFAULT_SORT).strip()
    name = sort.lstrip("+-")
    column = SORTABLE_COLUMNS.get(name)
    if column is None:
        return SORTABLE_COLUMNS["createdAt"], True
    return column, sort.startswith("-")


def parse_filters(filters: Mapping[str, Any] | None) -> AuditLogQuery:
    """
    Build a query from the admin filter parameters.

    Empty values are ignored.

    Raises:
        InvalidContentError: If a filter value cannot be parsed.
    """
    filters = filters or {}
    query = AuditLogQuery()
    try:
        if filters.get("contentType"):
            query.content_type = ContentType.parse(filters["contentType"])
        if filters.get("status"):
            query.status = AuditStatus(str(filters["status"]).strip().lower())
        if filters.get("userId"):
            query.user_id = int(filters["userId"])
        if filters.get("minConfidence"):
            query.min_confidence = float(filters["minConfidence"])
    except (TypeError, ValueError) as exc:
        raise InvalidContentError(f"Invalid filter: {exc}") from exc
    return query


class AuditAdminService:
    def __init__(self, database: Database, queue: AuditQueueService, content_store: ContentStore) -> None:
        self.database = database
        self.queue = queue
        self.content_store = content_store

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    @staticmethod
    def _assert_can(actor: Actor, permission: str) -> None:
        if not actor.can(permission):
            raise PermissionDeniedError(permission)

    @staticmethod
    def can_view_full(actor: Actor) -> bool:
        return actor.is_admin() or actor.can(VIEW_FULL_AUDIT_LOGS)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize_log(self, log: AuditLog, actor: Actor) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {
            "contentType": log.content_type.value,
            "contentId": log.content_id,
            "userId": log.user_id,
            "confidence": float(log.confidence) if log.confidence is not None else None,
            "actionsTaken": list(log.actions_taken),
            "conclusion": log.conclusion,
            "status": log.status.value,
            "retryCount": log.retry_count,
            "errorMessage": log.error_message,
            "executionLog": log.execution_log,
            "createdAt": log.created_at.isoformat(),
            "updatedAt": log.updated_at.isoformat(),
        }
        if self.can_view_full(actor):
            attributes["auditedContent"] = log.audited_content
            attributes["apiRequest"] = log.api_request
            attributes["apiResponse"] = log.api_response
        return {
            "type": "audit-logs",
            "id": str(log.id),
            "attributes": attributes,
            "relationships": {"user": {"data": {"type": "users", "id": str(log.user_id)}}},
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_logs(
        self,
        actor: Actor,
        filters: Mapping[str, Any] | None = None,
        sort: str | None = DEFAULT_SORT,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        One page of audit logs.

        Returns:
            dict: ``{"data": [...], "meta": {"total": n}}`` where ``total``
            counts every log matching the filters.

        Raises:
            PermissionDeniedError: Actor lacks ``view_audit_logs``.
            InvalidContentError: A filter or paging value is invalid.
        """
        self._assert_can(actor, VIEW_AUDIT_LOGS)
        query = parse_filters(filters)
        column, descending = parse_sort(sort)
        try:
            limit = max(1, int(limit))
            offset = max(0, int(offset))
        except (TypeError, ValueError) as exc:
            raise InvalidContentError(f"Invalid page parameters: {exc}") from exc

        logs, total = await self.database.list_logs(query, column, descending, limit, offset)
        return {
            "data": [self.serialize_log(log, actor) for log in logs],
            "meta": {"total": total},
        }

    async def show_log(self, actor: Actor, log_id: int) -> Dict[str, Any]:
        self._assert_can(actor, VIEW_AUDIT_LOGS)
        log = await self._get_log(log_id)
        return {"data": self.serialize_log(log, actor)}

    async def retry_log(self, actor: Actor, log_id: int) -> Dict[str, Any]:
        """
        Re-run an existing audit log.

        The log is marked ``retrying`` and re-queued with its id, so the
        job updates it in place and reuses the stored content snapshot.
        """
        self._assert_can(actor, RETRY_AUDIT)
        log = await self._get_log(log_id)

        log.mark_retrying()
        await self.database.save_log(log)

        changes = (log.audited_content or {}).get("content") or {}
        await self.queue.enqueue_audit(log.content_type, log.content_id, log.user_id, changes, log_id=log.id)
        logger.info("[AUDIT ADMIN] Actor #%s re-queued audit log #%s", actor.id, log.id)

        return {
            "data": {
                "type": "audit-logs",
                "id": str(log.id),
                "attributes": {"status": log.status.value, "retryCount": log.retry_count},
            }
        }

    async def manual_audit(self, actor: Actor, content_type: str, content_id: int) -> Dict[str, Any]:
        """
        Queue an audit of existing content on an operator's request.

        ``content_type`` is ``post``, ``discussion`` or one of
        ``user_profile_username|avatar|cover``; for the profile types
        ``content_id`` is the user id.

        Raises:
            PermissionDeniedError: Actor lacks ``manual_audit``.
            InvalidContentError: Missing or invalid type or id, or the
                selected profile field is empty.
            ContentNotFoundError: The content does not exist.
        """
        self._assert_can(actor, MANUAL_AUDIT)
        if not content_type or not content_id:
            raise InvalidContentError("contentType and contentId are required")
        if content_type not in MANUAL_AUDIT_TYPES:
            raise InvalidContentError(f"Invalid content type: {content_type}")
        try:
            content_id = int(content_id)
        except (TypeError, ValueError) as exc:
            raise InvalidContentError(f"Invalid content id: {content_id}") from exc

        match content_type:
            case "post" | "discussion":
                job_type = ContentType(content_type)
                content = await self.content_store.load_content(job_type, content_id)
                if content is None:
                    raise ContentNotFoundError(content_type, content_id)
                job = await self.queue.enqueue_audit(job_type, content_id, content.user_id, {})
            case _:
                user = await self.content_store.load_user(content_id)
                if user is None:
                    raise ContentNotFoundError("user", content_id)
                fields = self.build_profile_fields(content_type, user)
                if not fields:
                    raise InvalidContentError(f"Nothing to audit for {content_type} of user #{user.id}")
                job = await self.queue.enqueue_audit(ContentType.USER_PROFILE, None, user.id, fields)

        logger.info("[AUDIT ADMIN] Actor #%s queued manual %s audit of #%s", actor.id, content_type, content_id)
        return {
            "message": "Audit queued successfully",
            "contentType": content_type,
            "contentId": content_id,
            "jobType": job.content_type.value,
        }

    @staticmethod
    def build_profile_fields(content_type: str, user: UserProfile) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        match content_type:
            case "user_profile_username":
                fields["username"] = user.username
                fields["display_name"] = user.display_name
            case "user_profile_avatar" if user.avatar_url:
                avatar = user.avatar_url
                fields["avatar_url"] = avatar if "://" in avatar else local_file_marker(avatar, AVATAR_DISK, avatar)
            case "user_profile_cover" if user.cover:
                cover = user.cover
                fields["cover"] = cover if "://" in cover else local_file_marker(cover, COVER_DISK)
        return fields

    async def _get_log(self, log_id: int) -> AuditLog:
        log = await self.database.get_log(int(log_id))
        if log is None:
            raise ContentNotFoundError("audit_log", log_id)
        return log

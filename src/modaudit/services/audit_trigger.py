"""
Event-to-job bridge.

The host forum calls one of the ``on_*`` functions after a piece of content
is saved. Each function only decides what should happen and returns a list
of follow-up tasks; :func:`dispatch_tasks` carries them out against the
queue, the content store and the flag service.

Bypass rules:

* administrators and actors holding ``bypass_audit`` are never audited
* new posts and discussions are held for approval when
  ``pre_approve_enabled`` is set, unless the actor holds
  ``bypass_pre_approve``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Union

from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.content_datatypes import ContentType, Discussion, Post, UploadedFile, UserProfile
from modaudit.extraction.content_extractor import upload_category
from modaudit.interfaces import Actor, ContentStore
from modaudit.services.audit_job import AuditJob
from modaudit.services.audit_queue_service import AuditQueueService
from modaudit.services.flag_service import FlagService, FlagStage
from modaudit.util.logger import get_logger

logger = get_logger("audit_trigger")

BYPASS_AUDIT = "bypass_audit"
BYPASS_PRE_APPROVE = "bypass_pre_approve"

AVATAR_DISK = "avatars"
COVER_DISK = "profile-covers"

# Profile fields a user save can change; avatars arrive through on_avatar_changed
AUDITABLE_PROFILE_FIELDS = ("username", "display_name", "bio", "cover")


@dataclass(frozen=True, slots=True)
class EnqueueAudit:
    content_type: ContentType
    content_id: int | None
    user_id: int
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CreatePreApprovalFlag:
    content: Post | Discussion


@dataclass(frozen=True, slots=True)
class MarkUnapproved:
    content: Post | Discussion


AuditTask = Union[EnqueueAudit, CreatePreApprovalFlag, MarkUnapproved]


# ----------------------------------------------------------------------
# Permission helpers
# ----------------------------------------------------------------------


def can_bypass_audit(actor: Actor | None) -> bool:
    if actor is None:
        return False
    return actor.is_admin() or actor.can(BYPASS_AUDIT)


def can_bypass_pre_approve(actor: Actor | None) -> bool:
    if actor is None:
        return False
    return actor.is_admin() or actor.can(BYPASS_PRE_APPROVE)


def local_file_marker(value: str, disk: str, url: str | None = None) -> Dict[str, Any]:
    """Change-set shape for an image stored on one of the forum's disks."""
    return {"_local_file": True, "_disk": disk, "_path": value, "url": url}


def _is_local(value: Any) -> bool:
    return isinstance(value, str) and bool(value) and "://" not in value


# ----------------------------------------------------------------------
# Decisions
# ----------------------------------------------------------------------


def _held_for_approval(content: Post | Discussion, actor: Actor | None, settings: AuditSettings) -> List[AuditTask]:
    if not settings.pre_approve_enabled or can_bypass_pre_approve(actor):
        return []
    logger.debug("[AUDIT TRIGGER] Pre-approve: %s #%s held for approval", type(content).__name__, content.id)
    return [MarkUnapproved(content), CreatePreApprovalFlag(content)]


def on_post_saved(
    post: Post,
    actor: Actor | None,
    settings: AuditSettings,
    is_new: bool,
    content_changed: bool = False,
) -> List[AuditTask]:
    """Audit new posts and posts whose content was edited."""
    if can_bypass_audit(actor):
        logger.debug("[AUDIT TRIGGER] Actor bypassed audit of post #%s", post.id)
        return []
    if not is_new and not content_changed:
        return []

    tasks: List[AuditTask] = _held_for_approval(post, actor, settings) if is_new else []
    tasks.append(EnqueueAudit(ContentType.POST, post.id, post.user_id, {"content": post.content}))
    return tasks


def on_discussion_saved(
    discussion: Discussion,
    actor: Actor | None,
    settings: AuditSettings,
    is_new: bool,
    title_changed: bool = False,
) -> List[AuditTask]:
    """Audit new discussions and renamed ones."""
    if can_bypass_audit(actor):
        logger.debug("[AUDIT TRIGGER] Actor bypassed audit of discussion #%s", discussion.id)
        return []
    if not is_new and not title_changed:
        return []

    tasks: List[AuditTask] = _held_for_approval(discussion, actor, settings) if is_new else []
    tasks.append(
        EnqueueAudit(ContentType.DISCUSSION, discussion.id, discussion.user_id, {"title": discussion.title})
    )
    return tasks


def on_user_saved(user: UserProfile, actor: Actor | None, changed_fields: Iterable[str]) -> List[AuditTask]:
    """Audit the auditable profile fields among ``changed_fields``."""
    if can_bypass_audit(actor):
        logger.debug("[AUDIT TRIGGER] Actor bypassed profile audit of user #%s", user.id)
        return []

    changed = set(changed_fields)
    changes: Dict[str, Any] = {}
    for name in AUDITABLE_PROFILE_FIELDS:
        if name not in changed:
            continue
        value = getattr(user, name)
        if name == "cover" and _is_local(value):
            changes[name] = local_file_marker(value, COVER_DISK)
        else:
            changes[name] = value

    if not changes:
        return []
    logger.debug("[AUDIT TRIGGER] Profile fields %s changed for user #%s", sorted(changes), user.id)
    return [EnqueueAudit(ContentType.USER_PROFILE, None, user.id, changes)]


def on_avatar_changed(user: UserProfile, actor: Actor | None = None) -> List[AuditTask]:
    if can_bypass_audit(actor):
        logger.debug("[AUDIT TRIGGER] Actor bypassed avatar audit of user #%s", user.id)
        return []
    avatar = user.avatar_url
    if not avatar:
        logger.debug("[AUDIT TRIGGER] Avatar of user #%s is empty, skipping", user.id)
        return []

    value: Any = local_file_marker(avatar, AVATAR_DISK, avatar) if _is_local(avatar) else avatar
    return [EnqueueAudit(ContentType.USER_PROFILE, None, user.id, {"avatar_url": value})]


def on_file_uploaded(file: UploadedFile, actor: Actor | None, settings: AuditSettings) -> List[AuditTask]:
    """
    Audit an uploaded image or text file.

    Files of other types, and files larger than the cap for their category,
    are not audited.
    """
    if not settings.upload_audit_enabled:
        return []
    if can_bypass_audit(actor):
        logger.debug("[AUDIT TRIGGER] Actor bypassed audit of upload #%s", file.id)
        return []

    category = upload_category(file, {})
    match category:
        case "image":
            limit = settings.upload_image_max_size
        case "text":
            limit = settings.upload_text_max_size
        case _:
            logger.debug("[AUDIT TRIGGER] Upload #%s has unsupported type %s", file.id, file.mime_type)
            return []

    if file.size > limit:
        logger.info(
            "[AUDIT TRIGGER] Upload #%s skipped: %d bytes exceeds the %s limit of %d",
            file.id, file.size, category, limit,
        )
        return []

    changes = {"file_type": category, "mime": file.mime_type}
    return [EnqueueAudit(ContentType.UPLOAD, file.id, file.user_id, changes)]


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------


async def dispatch_tasks(
    tasks: Iterable[AuditTask],
    queue: AuditQueueService,
    content_store: ContentStore,
    flag_service: FlagService | None = None,
) -> List[AuditJob]:
    """
    Carry out ``tasks`` in order.

    Returns:
        List[AuditJob]: The jobs that were queued.
    """
    jobs: List[AuditJob] = []
    for task in tasks:
        match task:
            case MarkUnapproved(content=content):
                await content_store.unapprove(content)
                content.is_approved = False
            case CreatePreApprovalFlag(content=content):
                if flag_service is not None:
                    await flag_service.create_flag(content, None, FlagStage.PRE_APPROVAL)
            case EnqueueAudit():
                logger.info(
                    "[AUDIT TRIGGER] Queueing %s audit (content #%s, user #%s)",
                    task.content_type, task.content_id, task.user_id,
                )
                jobs.append(
                    await queue.enqueue_audit(task.content_type, task.content_id, task.user_id, task.changes)
                )
    return jobs

"""Private-message notices to users whose content violated the rules."""

from __future__ import annotations

from typing import Iterable

from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.content_datatypes import ContentType, UserProfile
from modaudit.interfaces import MessageSender
from modaudit.util.logger import get_logger

logger = get_logger("message_notifier")

DEFAULT_TEMPLATE = """\
Hello,

Our system detected that content you posted (type: {content_type}) may violate the community guidelines.

**Reason:**
{violations}

**Confidence:** {confidence}

Your content has been hidden automatically. Please revise it and post again. Contact an administrator if you have any questions.

Thank you for your understanding."""

CONTENT_TYPE_LABELS = {
    ContentType.POST.value: "post reply",
    ContentType.DISCUSSION.value: "discussion",
    ContentType.USER_PROFILE.value: "profile",
    ContentType.UPLOAD.value: "uploaded file",
}


def format_violation_message(
    template: str, content_type: str, violations: Iterable[str], confidence: float
) -> str:
    """Fill ``{content_type}``, ``{violations}`` and ``{confidence}`` in ``template``.

    Plain replacement, so other braces in a custom template are left alone.
    """
    violation_list = "\n".join(f"- {violation}" for violation in violations if violation)
    return (
        template.replace("{content_type}", CONTENT_TYPE_LABELS.get(content_type, content_type))
        .replace("{violations}", violation_list)
        .replace("{confidence}", f"{confidence * 100:.1f}%")
    )


class MessageNotifier:
    def __init__(self, settings: AuditSettings, sender: MessageSender | None) -> None:
        self.settings = settings
        self.sender = sender

    @property
    def enabled(self) -> bool:
        return self.settings.send_message_notification and self.sender is not None

    async def send_violation_notice(
        self,
        user: UserProfile,
        content_type: str,
        violations: Iterable[str],
        confidence: float,
    ) -> bool:
        """
        Send a violation notice from the configured system user.

        Returns:
            bool: True if the message was handed to the sender, False when
            notifications are disabled or sending failed.
        """
        if not self.enabled:
            logger.debug("[MESSAGE NOTIFIER] Message notification is disabled")
            return False

        template = self.settings.message_template.strip() or DEFAULT_TEMPLATE
        body = format_violation_message(template, content_type, violations, confidence)

        try:
            await self.sender.send_message(self.settings.system_user_id, user.id, body)
        except Exception as exc:
            logger.error("[MESSAGE NOTIFIER] Failed to send notice to user #%s: %s", user.id, exc)
            return False

        logger.info("[MESSAGE NOTIFIER] Violation notice sent to user #%s (%s)", user.id, content_type)
        return True

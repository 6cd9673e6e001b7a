"""
Render an :class:`AuditPayload` into chat-completion messages.

The user message takes one of two shapes:

- multimodal part list (text + one ``image_url`` part per inline image) when
  at least one image carries data
- plain string otherwise, with image URLs listed as text references
"""

from __future__ import annotations

from typing import Any, List

from openai.types.chat import (
    ChatCompletionContentPartImageParam,
    ChatCompletionContentPartTextParam,
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)

from modaudit.datatypes.payload_datatypes import AuditPayload
from modaudit.util.logger import get_logger

logger = get_logger("message_builder")


def _label(key: str) -> str:
    return key.replace("_", " ").capitalize()


def _render(value: Any) -> str:
    return "" if value is None else str(value)


def format_user_message(payload: AuditPayload) -> str:
    """Flatten the payload into the text the model reviews."""
    parts: List[str] = [f"Content Type: {payload.type}", ""]

    if payload.content:
        parts.append("Content to Review:")
        parts.extend(f"{_label(key)}: {_render(value)}" for key, value in payload.content.items())
        parts.append("")

    if payload.images:
        url_refs = [image for image in payload.images if not image.is_inline]
        # Only inline images travel as parts; the rest are listed by URL
        attached = len(payload.images) - len(url_refs) if payload.has_inline_images else len(payload.images)
        parts.append(f"Images: {attached} image(s) attached for review")
        parts.extend(f"Image ({image.type}): {image.url}" for image in url_refs)
        parts.append("")

    if payload.context:
        parts.append("Context:")
        parts.extend(f"{_label(key)}: {_render(value)}" for key, value in payload.context.items())

    return "\n".join(parts).rstrip("\n")


def build_messages(payload: AuditPayload, system_prompt: str) -> List[ChatCompletionMessageParam]:
    """
    Build the ``[system, user]`` message pair for one audit.

    Args:
        payload: Extracted content.
        system_prompt: Moderation instructions for the model.

    Returns:
        List[ChatCompletionMessageParam]: Exactly two messages.
    """
    text = format_user_message(payload)
    system = ChatCompletionSystemMessageParam(role="system", content=system_prompt)

    if not payload.has_inline_images:
        logger.debug("[MESSAGE BUILDER] Text-only message (%d url image(s))", len(payload.images))
        return [system, ChatCompletionUserMessageParam(role="user", content=text)]

    parts: List[ChatCompletionContentPartTextParam | ChatCompletionContentPartImageParam] = [
        ChatCompletionContentPartTextParam(type="text", text=text)
    ]
    for image in payload.images:
        if image.data is not None:
            parts.append(ChatCompletionContentPartImageParam(type="image_url", image_url={"url": image.data}))

    logger.debug("[MESSAGE BUILDER] Multimodal message with %d part(s)", len(parts))
    return [system, ChatCompletionUserMessageParam(role="user", content=parts)]

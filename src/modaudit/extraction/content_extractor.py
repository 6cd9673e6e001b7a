"""
Turn forum content plus its change set into an :class:`AuditPayload`.

- Posts and discussions: markup stripped to text, in-body images collected,
  author and discussion context attached
- User profiles: only the changed fields, avatar/cover as images
- Uploads: images inlined when possible, text files read and capped

Unreachable media never fails an extraction; it degrades to a URL reference
or a bracketed placeholder. Only structurally invalid input raises.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.content_datatypes import (
    ContentType,
    Discussion,
    ImageRef,
    InlineImage,
    LocalFileImage,
    Post,
    ProfileField,
    RemoteImage,
    UploadedFile,
    UserProfile,
    image_ref_from_change,
)
from modaudit.datatypes.payload_datatypes import AuditPayload, PayloadImage
from modaudit.exceptions import InvalidContentError
from modaudit.extraction import image_utils
from modaudit.extraction.text_utils import extract_image_urls, strip_html, truncate
from modaudit.interfaces import StorageReader
from modaudit.util.logger import get_logger

logger = get_logger("content_extractor")

UPLOAD_DISK = "uploads"
UPLOAD_DIR = "files"

SOURCE_LOCAL_FILE = "local_file"
SOURCE_DOWNLOADED_URL = "downloaded_url"

_TEXT_MIME_TYPES = ("application/json", "application/xml", "application/javascript")


def upload_category(file: UploadedFile, changes: Mapping[str, Any]) -> str:
    """Return ``image``, ``text`` or ``unknown`` for an uploaded file."""
    declared = changes.get("file_type")
    if declared:
        return str(declared)
    mime = str(changes.get("mime") or file.mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("text/") or mime in _TEXT_MIME_TYPES or mime.endswith(("+json", "+xml")):
        return "text"
    return "unknown"


class ContentExtractor:
    """Builds audit payloads, resolving images according to ``download_images``."""

    def __init__(self, settings: AuditSettings, storage: StorageReader | None = None) -> None:
        self.settings = settings
        self.storage = storage

    async def extract(
        self,
        content_type: ContentType,
        content: Any,
        changes: Mapping[str, Any] | None = None,
    ) -> AuditPayload:
        """
        Extract the payload for one audit.

        Args:
            content_type: Which kind of content is being audited.
            content: The loaded entity; must match ``content_type``.
            changes: The change set that triggered the audit.

        Raises:
            InvalidContentError: If ``content`` does not match ``content_type``
                or ``changes`` is not a mapping.
        """
        if changes is None:
            changes = {}
        if not isinstance(changes, Mapping):
            raise InvalidContentError(f"Change set must be a mapping, got {type(changes).__name__}")

        match content_type:
            case ContentType.POST:
                return await self.extract_post(self._expect(content, Post, content_type))
            case ContentType.DISCUSSION:
                return await self.extract_discussion(self._expect(content, Discussion, content_type))
            case ContentType.USER_PROFILE:
                return await self.extract_user_profile(self._expect(content, UserProfile, content_type), changes)
            case ContentType.UPLOAD:
                return await self.extract_upload(self._expect(content, UploadedFile, content_type), changes)

    @staticmethod
    def _expect(content: Any, expected: type, content_type: ContentType) -> Any:
        if not isinstance(content, expected):
            raise InvalidContentError(
                f"Expected {expected.__name__} for content type '{content_type}', got {type(content).__name__}"
            )
        return content

    # ------------------------------------------------------------------
    # Per content type
    # ------------------------------------------------------------------

    async def extract_post(self, post: Post) -> AuditPayload:
        payload = AuditPayload(type=ContentType.POST.value)
        payload.content["text"] = truncate(strip_html(post.content))
        payload.images = await self._body_images(post.content, "post_image")

        discussion = post.discussion
        if discussion is not None:
            payload.context["discussion_title"] = discussion.title
            first_post = discussion.first_post
            if first_post is not None and first_post.id != post.id:
                payload.context["discussion_content"] = truncate(strip_html(first_post.content))

        if post.author is not None:
            payload.context["username"] = post.author.username
            payload.context["display_name"] = post.author.display_name
        return payload

    async def extract_discussion(self, discussion: Discussion) -> AuditPayload:
        payload = AuditPayload(type=ContentType.DISCUSSION.value)
        payload.content["title"] = discussion.title

        first_post = discussion.first_post
        if first_post is not None:
            payload.content["content"] = truncate(strip_html(first_post.content))
            payload.images = await self._body_images(first_post.content, "discussion_image")

        if discussion.author is not None:
            payload.context["username"] = discussion.author.username
            payload.context["display_name"] = discussion.author.display_name
        return payload

    async def extract_user_profile(self, user: UserProfile, changes: Mapping[str, Any]) -> AuditPayload:
        payload = AuditPayload(type=ContentType.USER_PROFILE.value)

        for key, value in changes.items():
            field = ProfileField.parse(str(key))
            match field:
                case ProfileField.USERNAME | ProfileField.DISPLAY_NAME:
                    payload.content[field.value] = "" if value is None else str(value)
                case ProfileField.BIO:
                    payload.content[field.value] = truncate("" if value is None else str(value))
                case ProfileField.AVATAR | ProfileField.COVER:
                    ref = image_ref_from_change(value)
                    if ref is None:
                        continue
                    payload.content[field.value] = _reference_text(ref)
                    image = await self.resolve_image(ref, field.value)
                    if image is not None:
                        payload.images.append(image)
                case None:
                    logger.debug("[CONTENT EXTRACTOR] Ignoring non-auditable profile field '%s'", key)

        payload.context["user_id"] = user.id
        payload.context["joined_at"] = user.joined_at.isoformat() if user.joined_at else None
        return payload

    async def extract_upload(self, file: UploadedFile, changes: Mapping[str, Any]) -> AuditPayload:
        payload = AuditPayload(type=ContentType.UPLOAD.value)
        payload.context.update(
            {
                "file_id": file.id,
                "file_name": file.base_name,
                "file_size": file.size,
                "mime_type": str(changes.get("mime") or file.mime_type),
                "upload_method": file.upload_method or "unknown",
                "uploaded_at": file.created_at.isoformat() if file.created_at else None,
            }
        )

        match upload_category(file, changes):
            case "image":
                payload.content["file_name"] = file.base_name
                image = await self._upload_image(file)
                if image is not None:
                    payload.images.append(image)
            case "text":
                payload.content["file_name"] = file.base_name
                payload.content["file_content"] = await self._upload_text(file)
            case other:
                logger.debug("[CONTENT EXTRACTOR] Upload #%s has category '%s'; metadata only", file.id, other)
        return payload

    # ------------------------------------------------------------------
    # Image resolution
    # ------------------------------------------------------------------

    async def resolve_image(self, ref: ImageRef, image_type: str) -> PayloadImage | None:
        """Resolve an image reference into a payload entry.

        Inline bytes are always embedded. Local files and remote URLs are
        inlined only when ``download_images`` is on, and fall back to their
        URL otherwise.
        """
        match ref:
            case InlineImage(data=data, mime_type=mime_type):
                uri = image_utils.image_to_data_uri(data, mime_type)
                if uri is None:
                    logger.warning("[CONTENT EXTRACTOR] Dropping undecodable inline %s (%s)", image_type, mime_type)
                    return None
                return PayloadImage(type=image_type, data=uri)

            case LocalFileImage(disk=disk, path=path):
                if self.settings.download_images and self.storage is not None:
                    data = await image_utils.read_local_image(
                        self.storage, disk, path, timeout=self.settings.local_read_timeout
                    )
                    if data:
                        logger.info("[CONTENT EXTRACTOR] Read local %s %s:%s", image_type, disk, path)
                        return PayloadImage(type=image_type, data=data)
                    logger.warning(
                        "[CONTENT EXTRACTOR] Failed to read local %s %s:%s, using URL fallback",
                        image_type, disk, path,
                    )
                return PayloadImage(type=image_type, url=ref.reference)

            case RemoteImage(url=url):
                if self.settings.download_images and "://" in url:
                    data = await image_utils.download_image(url)
                    if data:
                        return PayloadImage(type=image_type, data=data)
                return PayloadImage(type=image_type, url=url)

        return None

    async def _body_images(self, markup: str, image_type: str) -> list[PayloadImage]:
        images: list[PayloadImage] = []
        for url in extract_image_urls(markup):
            image = await self.resolve_image(RemoteImage(url), image_type)
            if image is not None:
                images.append(image)
        return images

    async def _upload_image(self, file: UploadedFile) -> PayloadImage | None:
        data: str | None = None
        source: str | None = None

        if self.settings.download_images:
            if file.upload_method == "local" and file.path and self.storage is not None:
                local_path = f"{UPLOAD_DIR}/{file.path}"
                data = await image_utils.read_local_image(
                    self.storage, UPLOAD_DISK, local_path, timeout=self.settings.local_read_timeout
                )
                if data:
                    source = SOURCE_LOCAL_FILE
                else:
                    logger.warning("[CONTENT EXTRACTOR] Failed to read local upload #%s at %s", file.id, local_path)

            if not data and file.url:
                data = await image_utils.download_image(file.url)
                if data:
                    source = SOURCE_DOWNLOADED_URL
                else:
                    logger.warning("[CONTENT EXTRACTOR] Failed to download upload #%s from %s", file.id, file.url)

        if data:
            return PayloadImage(type="uploaded_file", data=data, source=source)
        if file.url:
            logger.warning(
                "[CONTENT EXTRACTOR] Upload #%s attached as URL reference only (%s)",
                file.id, "download_failed" if self.settings.download_images else "download_disabled",
            )
            return PayloadImage(type="uploaded_file", url=file.url)

        logger.error("[CONTENT EXTRACTOR] Cannot attach upload #%s: no data and no URL", file.id)
        return None

    async def _upload_text(self, file: UploadedFile) -> str:
        max_size = self.settings.upload_text_max_size
        try:
            if file.upload_method == "local" and file.path and self.storage is not None:
                local_path = f"{UPLOAD_DIR}/{file.path}"
                text = await asyncio.wait_for(
                    asyncio.to_thread(image_utils.read_local_text, self.storage, UPLOAD_DISK, local_path, max_size),
                    timeout=self.settings.local_read_timeout,
                )
                if text is None:
                    logger.warning("[CONTENT EXTRACTOR] Text upload #%s not found at %s", file.id, local_path)
                    return "[File not found]"
                return text
            if file.url:
                return await asyncio.to_thread(image_utils.download_text, file.url, max_size)
        except Exception as exc:
            logger.error("[CONTENT EXTRACTOR] Failed to read text upload #%s: %s", file.id, exc)
            return f"[Error reading file: {exc or type(exc).__name__}]"

        logger.warning("[CONTENT EXTRACTOR] Cannot read text upload #%s: no path or URL", file.id)
        return "[Cannot read file]"


def _reference_text(ref: ImageRef) -> str:
    match ref:
        case InlineImage():
            return "[inline image]"
        case LocalFileImage():
            return ref.reference
        case RemoteImage(url=url):
            return url
    return ""

"""
Content types, host entities and image references for the audit pipeline.

The forum owns posts, discussions, users and uploads; modaudit receives
read-only snapshots of them from the content store. Every audited item is
one of four closed variants selected by :class:`ContentType`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Union


class ContentType(Enum):
    """Kind of content an audit job targets."""

    POST = "post"
    DISCUSSION = "discussion"
    USER_PROFILE = "user_profile"
    UPLOAD = "upload"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | ContentType") -> "ContentType":
        """Resolve a content type, accepting the legacy per-field profile tags.

        Raises:
            ValueError: If the value names no known content type.
        """
        if isinstance(value, ContentType):
            return value
        normalized = str(value).strip().lower()
        if normalized in LEGACY_PROFILE_TYPES:
            return cls.USER_PROFILE
        return cls(normalized)


# Older jobs were queued with one of these instead of "user_profile"
LEGACY_PROFILE_TYPES = frozenset({"avatar", "username", "bio"})


class ProfileField(Enum):
    """Auditable profile fields."""

    USERNAME = "username"
    DISPLAY_NAME = "display_name"
    BIO = "bio"
    AVATAR = "avatar"
    COVER = "cover"

    @classmethod
    def parse(cls, value: str) -> "ProfileField | None":
        """Return the field for a change-set key, or None if it is not auditable."""
        key = value.strip().lower()
        if key == "avatar_url":
            return cls.AVATAR
        try:
            return cls(key)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Host entities
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class UserProfile:
    """A forum user. Optional extension fields are None when absent."""

    id: int
    username: str
    display_name: str = ""
    bio: str | None = None
    avatar_url: str | None = None
    cover: str | None = None
    joined_at: datetime | None = None
    is_admin: bool = False
    suspended_until: datetime | None = None
    suspend_reason: str | None = None
    suspend_message: str | None = None


@dataclass(slots=True)
class Post:
    """A comment post. ``content`` holds the stored markup (XML/HTML/Markdown)."""

    id: int
    user_id: int
    content: str
    discussion: "Discussion | None" = None
    author: UserProfile | None = None
    is_approved: bool = True
    number: int = 1


@dataclass(slots=True)
class Discussion:
    """A discussion thread and its opening post."""

    id: int
    user_id: int
    title: str
    first_post: Post | None = None
    author: UserProfile | None = None
    is_approved: bool = True


@dataclass(slots=True)
class UploadedFile:
    """A file uploaded through the forum's upload extension."""

    id: int
    user_id: int
    base_name: str
    size: int
    mime_type: str = "application/octet-stream"
    upload_method: str = "local"
    path: str | None = None
    url: str | None = None
    created_at: datetime | None = None


AuditSubject = Union[Post, Discussion, UserProfile, UploadedFile]


# ---------------------------------------------------------------------------
# Image references
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InlineImage:
    """Image bytes that are already in memory."""

    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(frozen=True, slots=True)
class RemoteImage:
    """Image reachable only through a URL."""

    url: str


@dataclass(frozen=True, slots=True)
class LocalFileImage:
    """Image stored on one of the forum's storage disks.

    ``url`` is the public URL to fall back on when the file cannot be read;
    when it is None the storage path itself is used as the reference.
    """

    disk: str
    path: str
    url: str | None = None

    @property
    def reference(self) -> str:
        return self.url or self.path


ImageRef = Union[InlineImage, RemoteImage, LocalFileImage]


def image_ref_from_change(value: Any) -> ImageRef | None:
    """Convert a change-set value into an :data:`ImageRef`.

    Accepts an existing ImageRef, a plain URL string, or the mapping shape
    ``{"_local_file": True, "_disk": ..., "_path": ..., "url": ...}`` emitted
    by profile-change listeners. Empty values return None.
    """
    if value is None or isinstance(value, (InlineImage, RemoteImage, LocalFileImage)):
        return value

    if isinstance(value, Mapping):
        if value.get("_local_file"):
            disk = value.get("_disk")
            path = value.get("_path")
            if not disk or not path:
                url = value.get("url")
                return RemoteImage(str(url)) if url else None
            url = value.get("url")
            return LocalFileImage(disk=str(disk), path=str(path), url=str(url) if url else None)
        url = value.get("url")
        return RemoteImage(str(url)) if url else None

    text = str(value).strip()
    if not text:
        return None
    return RemoteImage(text)

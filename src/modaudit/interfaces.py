"""
Protocols for the host-forum collaborators the audit pipeline consumes.

The forum persists posts, discussions and users, checks permissions and
delivers messages; modaudit only talks to it through these interfaces.
:class:`LocalDiskStorage` is a filesystem-backed :class:`StorageReader`
used by the standalone runner and the tests.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from modaudit.datatypes.content_datatypes import AuditSubject, ContentType, UserProfile


@runtime_checkable
class ContentStore(Protocol):
    """Read and mutate forum content.

    ``load_content`` and ``load_user`` return None when the entity does not
    exist.
    """

    async def load_content(self, content_type: ContentType, content_id: int) -> AuditSubject | None: ...

    async def load_user(self, user_id: int) -> UserProfile | None: ...

    async def approve(self, content: AuditSubject) -> None: ...

    async def unapprove(self, content: AuditSubject) -> None: ...

    async def set_profile_field(self, user: UserProfile, field: str, value: Any) -> None: ...

    async def suspend(self, user: UserProfile, until: datetime, reason: str, message: str) -> None: ...


@runtime_checkable
class StorageReader(Protocol):
    """Byte access to files on named storage disks."""

    def exists(self, disk: str, path: str) -> bool: ...

    def size(self, disk: str, path: str) -> int: ...

    def read(self, disk: str, path: str) -> bytes: ...

    def mime_type(self, disk: str, path: str) -> str | None: ...


@runtime_checkable
class MessageSender(Protocol):
    async def send_message(self, sender_id: int, recipient_id: int, body: str) -> None: ...


@runtime_checkable
class EventDispatcher(Protocol):
    async def dispatch(self, event: Any) -> None: ...


@runtime_checkable
class Actor(Protocol):
    """The user performing an operation, as seen by the host's permission layer."""

    id: int

    def is_admin(self) -> bool: ...

    def can(self, permission: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class UserSuspended:
    """Emitted after the audit pipeline suspends a user."""

    user_id: int
    suspended_until: datetime
    reason: str
    audit_log_id: int | None = None


class LocalDiskStorage:
    """Maps disk names to local directories.

    Paths are resolved relative to the disk root and may not escape it.
    """

    def __init__(self, disks: Mapping[str, str | Path]) -> None:
        self.roots = {name: Path(root).resolve() for name, root in disks.items()}

    def _resolve(self, disk: str, path: str) -> Path:
        try:
            root = self.roots[disk]
        except KeyError:
            raise FileNotFoundError(f"Unknown storage disk: {disk}") from None
        target = (root / path.lstrip("/")).resolve()
        if not target.is_relative_to(root):
            raise FileNotFoundError(f"Path escapes disk {disk}: {path}")
        return target

    def exists(self, disk: str, path: str) -> bool:
        try:
            return self._resolve(disk, path).is_file()
        except FileNotFoundError:
            return False

    def size(self, disk: str, path: str) -> int:
        return self._resolve(disk, path).stat().st_size

    def read(self, disk: str, path: str) -> bytes:
        return self._resolve(disk, path).read_bytes()

    def mime_type(self, disk: str, path: str) -> str | None:
        guessed, _ = mimetypes.guess_type(path)
        return guessed

"""
Pytest configuration and fixtures for modaudit tests.

The fakes below stand in for the host forum's collaborators; each records
the calls it receives so tests can assert on side effects.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modaudit.configuration.audit_settings import AuditSettings  # noqa: E402
from modaudit.database.database import Database  # noqa: E402
from modaudit.datatypes.content_datatypes import (  # noqa: E402
    ContentType,
    Discussion,
    Post,
    UploadedFile,
    UserProfile,
)


class FakeContentStore:
    """In-memory content store."""

    def __init__(self) -> None:
        self.posts: Dict[int, Post] = {}
        self.discussions: Dict[int, Discussion] = {}
        self.uploads: Dict[int, UploadedFile] = {}
        self.users: Dict[int, UserProfile] = {}
        self.approved: List[Any] = []
        self.unapproved: List[Any] = []
        self.profile_updates: List[tuple] = []
        self.suspensions: List[tuple] = []
        self.fail_on: set[str] = set()

    def add(self, entity: Any) -> Any:
        match entity:
            case Post():
                self.posts[entity.id] = entity
            case Discussion():
                self.discussions[entity.id] = entity
            case UploadedFile():
                self.uploads[entity.id] = entity
            case UserProfile():
                self.users[entity.id] = entity
        return entity

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} failed")

    async def load_content(self, content_type: ContentType, content_id: int):
        match content_type:
            case ContentType.POST:
                return self.posts.get(content_id)
            case ContentType.DISCUSSION:
                return self.discussions.get(content_id)
            case ContentType.UPLOAD:
                return self.uploads.get(content_id)
            case ContentType.USER_PROFILE:
                return self.users.get(content_id)

    async def load_user(self, user_id: int):
        return self.users.get(user_id)

    async def approve(self, content: Any) -> None:
        self._check("approve")
        self.approved.append(content)

    async def unapprove(self, content: Any) -> None:
        self._check("unapprove")
        self.unapproved.append(content)

    async def set_profile_field(self, user: UserProfile, field: str, value: Any) -> None:
        self._check("set_profile_field")
        self.profile_updates.append((user.id, field, value))

    async def suspend(self, user: UserProfile, until: datetime, reason: str, message: str) -> None:
        self._check("suspend")
        self.suspensions.append((user.id, until, reason, message))


class FakeStorage:
    """In-memory storage reader keyed by (disk, path)."""

    def __init__(self, files: Dict[tuple, bytes] | None = None, mime_types: Dict[tuple, str] | None = None) -> None:
        self.files = dict(files or {})
        self.mime_types = dict(mime_types or {})
        self.reads: List[tuple] = []

    def exists(self, disk: str, path: str) -> bool:
        return (disk, path) in self.files

    def size(self, disk: str, path: str) -> int:
        return len(self.files[(disk, path)])

    def read(self, disk: str, path: str) -> bytes:
        self.reads.append((disk, path))
        return self.files[(disk, path)]

    def mime_type(self, disk: str, path: str) -> str | None:
        return self.mime_types.get((disk, path))


class FakeSender:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[tuple] = []

    async def send_message(self, sender_id: int, recipient_id: int, body: str) -> None:
        if self.fail:
            raise RuntimeError("mailbox unavailable")
        self.sent.append((sender_id, recipient_id, body))


class FakeEvents:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: List[Any] = []

    async def dispatch(self, event: Any) -> None:
        if self.fail:
            raise RuntimeError("listener crashed")
        self.events.append(event)


class FakeActor:
    def __init__(self, id: int = 1, admin: bool = False, permissions: set[str] | None = None) -> None:
        self.id = id
        self.admin = admin
        self.permissions = set(permissions or ())

    def is_admin(self) -> bool:
        return self.admin

    def can(self, permission: str) -> bool:
        return self.admin or permission in self.permissions


@pytest.fixture
def settings() -> AuditSettings:
    return AuditSettings(api_key="test-key", model="test-model", download_images=False, job_backoff_seconds=0.0)


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def author() -> UserProfile:
    return UserProfile(id=7, username="alice", display_name="Alice")


@pytest_asyncio.fixture
async def database(tmp_path: Path):
    """A freshly initialized SQLite database per test."""
    db = Database(tmp_path / "audit.db")
    assert await db.initialize()
    yield db
    await db.shutdown()

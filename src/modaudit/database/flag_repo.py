"""
Persistent storage for moderation flags raised by the audit pipeline.

``(post_id, type)`` is unique, so inserting an existing flag is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Tuple

import aiosqlite

from modaudit.util.logger import get_logger

logger = get_logger("flag_repo")


@dataclass
class FlagRecord:
    """A single row from the ``audit_flags`` table."""
    id: int
    post_id: int
    type: str
    reason: str | None
    reason_detail: str | None
    audit_log_id: int | None
    created_at: datetime


def _row_to_flag(row: aiosqlite.Row) -> FlagRecord:
    return FlagRecord(
        id=row["id"],
        post_id=row["post_id"],
        type=row["type"],
        reason=row["reason"],
        reason_detail=row["reason_detail"],
        audit_log_id=row["audit_log_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class FlagRepo:
    """Low-level CRUD for the ``audit_flags`` table."""

    @staticmethod
    async def get_by_post(conn: aiosqlite.Connection, post_id: int, flag_type: str) -> FlagRecord | None:
        cursor = await conn.execute(
            "SELECT id, post_id, type, reason, reason_detail, audit_log_id, created_at "
            "FROM audit_flags WHERE post_id = ? AND type = ?",
            (post_id, flag_type),
        )
        row = await cursor.fetchone()
        return _row_to_flag(row) if row else None

    @staticmethod
    async def insert_if_absent(
        conn: aiosqlite.Connection,
        post_id: int,
        flag_type: str,
        reason: str | None,
        reason_detail: str | None,
        audit_log_id: int | None,
    ) -> Tuple[FlagRecord, bool]:
        """Insert a flag unless one exists; return ``(flag, created)``."""
        cursor = await conn.execute(
            """
            INSERT INTO audit_flags (post_id, type, reason, reason_detail, audit_log_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(post_id, type) DO NOTHING
            """,
            (post_id, flag_type, reason, reason_detail, audit_log_id, datetime.now(timezone.utc).isoformat()),
        )
        created = cursor.rowcount > 0
        flag = await FlagRepo.get_by_post(conn, post_id, flag_type)
        if flag is None:
            raise RuntimeError(f"Flag for post {post_id} vanished after insert")
        return flag, created

    @staticmethod
    async def delete_by_post(conn: aiosqlite.Connection, post_id: int, flag_type: str) -> int:
        cursor = await conn.execute(
            "DELETE FROM audit_flags WHERE post_id = ? AND type = ?",
            (post_id, flag_type),
        )
        return cursor.rowcount

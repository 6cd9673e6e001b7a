"""
Persistent storage for audit logs.

JSON snapshot columns are stored as TEXT; timestamps as ISO-8601 UTC
strings, which sort lexicographically.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Tuple

import aiosqlite

from modaudit.datatypes.audit_datatypes import AuditLog, AuditStatus
from modaudit.datatypes.content_datatypes import ContentType
from modaudit.util.logger import get_logger

logger = get_logger("audit_log_repo")

_COLUMNS = (
    "id, content_type, content_id, user_id, audited_content, api_request, api_response, "
    "response_format_version, confidence, actions_taken, conclusion, execution_log, "
    "status, retry_count, error_message, created_at, updated_at"
)

SORTABLE_COLUMNS = {
    "createdAt": "created_at",
    "confidence": "confidence",
    "status": "status",
}


@dataclass(slots=True)
class AuditLogQuery:
    """Filters for listing audit logs; None means "any"."""

    content_type: ContentType | None = None
    status: AuditStatus | None = None
    user_id: int | None = None
    min_confidence: float | None = None


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _load(value: str | None) -> Any:
    if value is None:
        return None
    return json.loads(value)


def _row_to_log(row: aiosqlite.Row) -> AuditLog:
    return AuditLog(
        id=row["id"],
        content_type=ContentType(row["content_type"]),
        content_id=row["content_id"],
        user_id=row["user_id"],
        audited_content=_load(row["audited_content"]),
        api_request=_load(row["api_request"]),
        api_response=_load(row["api_response"]),
        response_format_version=row["response_format_version"],
        confidence=row["confidence"],
        actions_taken=_load(row["actions_taken"]) or [],
        conclusion=row["conclusion"],
        execution_log=_load(row["execution_log"]),
        status=AuditStatus(row["status"]),
        retry_count=row["retry_count"],
        error_message=row["error_message"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _where(query: AuditLogQuery) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if query.content_type is not None:
        clauses.append("content_type = ?")
        params.append(query.content_type.value)
    if query.status is not None:
        clauses.append("status = ?")
        params.append(query.status.value)
    if query.user_id is not None:
        clauses.append("user_id = ?")
        params.append(query.user_id)
    if query.min_confidence is not None:
        clauses.append("confidence >= ?")
        params.append(query.min_confidence)
    sql = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return sql, params


class AuditLogRepo:
    """Low-level CRUD for the ``audit_logs`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def create(conn: aiosqlite.Connection, log: AuditLog) -> int:
        """Insert ``log`` and assign its id."""
        cursor = await conn.execute(
            """
            INSERT INTO audit_logs (
                content_type, content_id, user_id, audited_content, api_request, api_response,
                response_format_version, confidence, actions_taken, conclusion, execution_log,
                status, retry_count, error_message, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log.content_type.value,
                log.content_id,
                log.user_id,
                _dump(log.audited_content),
                _dump(log.api_request),
                _dump(log.api_response),
                log.response_format_version,
                log.confidence,
                _dump(list(log.actions_taken)),
                log.conclusion,
                _dump(log.execution_log),
                log.status.value,
                log.retry_count,
                log.error_message,
                log.created_at.isoformat(),
                log.updated_at.isoformat(),
            ),
        )
        log.id = cursor.lastrowid
        return log.id

    @staticmethod
    async def update(conn: aiosqlite.Connection, log: AuditLog) -> None:
        """Write every mutable column of ``log`` back to its row."""
        if log.id is None:
            raise ValueError("Cannot update an audit log that has not been created")
        await conn.execute(
            """
            UPDATE audit_logs SET
                audited_content = ?, api_request = ?, api_response = ?,
                response_format_version = ?, confidence = ?, actions_taken = ?,
                conclusion = ?, execution_log = ?, status = ?, retry_count = ?,
                error_message = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                _dump(log.audited_content),
                _dump(log.api_request),
                _dump(log.api_response),
                log.response_format_version,
                log.confidence,
                _dump(list(log.actions_taken)),
                log.conclusion,
                _dump(log.execution_log),
                log.status.value,
                log.retry_count,
                log.error_message,
                log.updated_at.isoformat(),
                log.id,
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, log_id: int) -> AuditLog | None:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM audit_logs WHERE id = ?", (log_id,))
        row = await cursor.fetchone()
        return _row_to_log(row) if row else None

    @staticmethod
    async def find_latest_unfinished(
        conn: aiosqlite.Connection,
        content_type: ContentType,
        content_id: int | None,
        user_id: int,
    ) -> AuditLog | None:
        """Return the newest non-completed log for one piece of content."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM audit_logs "
            "WHERE content_type = ? AND content_id IS ? AND user_id = ? AND status != ? "
            "ORDER BY id DESC LIMIT 1",
            (content_type.value, content_id, user_id, AuditStatus.COMPLETED.value),
        )
        row = await cursor.fetchone()
        return _row_to_log(row) if row else None

    @staticmethod
    async def list_logs(
        conn: aiosqlite.Connection,
        query: AuditLogQuery,
        sort_column: str = "created_at",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> List[AuditLog]:
        if sort_column not in SORTABLE_COLUMNS.values():
            raise ValueError(f"Unsortable column: {sort_column}")
        where, params = _where(query)
        direction = "DESC" if descending else "ASC"
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM audit_logs{where} "
            f"ORDER BY {sort_column} {direction}, id {direction} LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return [_row_to_log(row) for row in rows]

    @staticmethod
    async def count(conn: aiosqlite.Connection, query: AuditLogQuery) -> int:
        where, params = _where(query)
        cursor = await conn.execute(f"SELECT COUNT(*) FROM audit_logs{where}", params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

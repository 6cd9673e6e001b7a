"""
Database coordinator for the audit pipeline.

The Database class owns one :class:`ConnectionManager` and delegates to the
repositories:

- schema: table/index creation and migrations
- audit logs: create/update/query ``audit_logs``
- flags: idempotent create/delete on ``audit_flags``

Every write runs in its own committed transaction.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

from modaudit.database.audit_log_repo import AuditLogQuery, AuditLogRepo
from modaudit.database.db_connection import ConnectionManager
from modaudit.database.db_schema import SchemaManager
from modaudit.database.flag_repo import FlagRecord, FlagRepo
from modaudit.datatypes.audit_datatypes import AuditLog
from modaudit.datatypes.content_datatypes import ContentType
from modaudit.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path("./data/modaudit.db").resolve()


class Database:
    """
    Central database coordinator.

    Lifecycle:
        1. ``await initialize()`` at startup
        2. use the log and flag methods
        3. ``await shutdown()`` at exit
    """

    def __init__(self, db_path: Path = DB_PATH, connection: ConnectionManager | None = None) -> None:
        self.db_path = db_path
        self.connection = connection or ConnectionManager()
        self._initialized = False

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        try:
            await self.connection.open(self.db_path)
            await SchemaManager.initialize_schema(self.connection.connection)
        except Exception as exc:
            logger.error("[DATABASE] Database initialization failed: %s", exc)
            await self.connection.close()
            return False

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)
        return True

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self.connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    # ------------------------------------------------------------------
    # Audit logs
    # ------------------------------------------------------------------

    async def create_log(self, log: AuditLog) -> AuditLog:
        async with self.connection.transaction() as conn:
            await AuditLogRepo.create(conn, log)
        return log

    async def save_log(self, log: AuditLog) -> None:
        """Persist the current state of ``log``; committed on return."""
        log.touch()
        async with self.connection.transaction() as conn:
            await AuditLogRepo.update(conn, log)

    async def get_log(self, log_id: int) -> AuditLog | None:
        async with self.connection.read() as conn:
            return await AuditLogRepo.get(conn, log_id)

    async def find_latest_unfinished_log(
        self, content_type: ContentType, content_id: int | None, user_id: int
    ) -> AuditLog | None:
        async with self.connection.read() as conn:
            return await AuditLogRepo.find_latest_unfinished(conn, content_type, content_id, user_id)

    async def list_logs(
        self,
        query: AuditLogQuery,
        sort_column: str = "created_at",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[AuditLog], int]:
        """Return one page of logs and the total matching count."""
        async with self.connection.read() as conn:
            logs = await AuditLogRepo.list_logs(conn, query, sort_column, descending, limit, offset)
            total = await AuditLogRepo.count(conn, query)
        return logs, total

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    async def create_flag(
        self,
        post_id: int,
        flag_type: str,
        reason: str | None,
        reason_detail: str | None,
        audit_log_id: int | None,
    ) -> Tuple[FlagRecord, bool]:
        async with self.connection.transaction() as conn:
            return await FlagRepo.insert_if_absent(conn, post_id, flag_type, reason, reason_detail, audit_log_id)

    async def get_flag(self, post_id: int, flag_type: str) -> FlagRecord | None:
        async with self.connection.read() as conn:
            return await FlagRepo.get_by_post(conn, post_id, flag_type)

    async def delete_flags(self, post_id: int, flag_type: str) -> int:
        async with self.connection.transaction() as conn:
            return await FlagRepo.delete_by_post(conn, post_id, flag_type)

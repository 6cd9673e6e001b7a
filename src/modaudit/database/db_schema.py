"""
Database schema initialization and migration management.

Creates the ``audit_logs`` and ``audit_flags`` tables, their indexes and the
schema version marker.
"""

import aiosqlite

from modaudit.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 2


class SchemaManager:
    """Creates and migrates the audit database schema."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all tables and indexes.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._migrate(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content_type TEXT NOT NULL,
                content_id INTEGER,
                user_id INTEGER NOT NULL,
                audited_content TEXT,
                api_request TEXT,
                api_response TEXT,
                response_format_version TEXT NOT NULL DEFAULT 'json_schema',
                confidence REAL,
                actions_taken TEXT NOT NULL DEFAULT '[]',
                conclusion TEXT,
                execution_log TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                retry_count INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # One audit flag per post; reason_detail is shown to human moderators
        await db.execute("""
            CREATE TABLE IF NOT EXISTS audit_flags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                post_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                reason TEXT,
                reason_detail TEXT,
                audit_log_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY (audit_log_id) REFERENCES audit_logs(id) ON DELETE SET NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _migrate(db: aiosqlite.Connection) -> None:
        """Add columns introduced after version 1."""
        cursor = await db.execute("PRAGMA table_info(audit_logs)")
        columns = {row[1] for row in await cursor.fetchall()}
        if "response_format_version" not in columns:
            await db.execute(
                "ALTER TABLE audit_logs ADD COLUMN response_format_version TEXT NOT NULL DEFAULT 'json_schema'"
            )
            logger.info("[SCHEMA] Added response_format_version column to audit_logs")

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_type_status ON audit_logs(content_type, status)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_user_created ON audit_logs(user_id, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_content ON audit_logs(content_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_status ON audit_logs(status)")
        await db.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_audit_flags_post_type ON audit_flags(post_id, type)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

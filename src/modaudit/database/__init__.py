"""
Database package for modaudit.

SQLite (aiosqlite) storage for audit logs and moderation flags.

Public API:
    - Database: coordinator owning the connection and repositories
    - AuditLogQuery: filters for listing audit logs
"""

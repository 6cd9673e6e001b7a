"""
Configuration management for modaudit.

- **app_configuration.py**: YAML configuration loader guarded by a shared file
  lock. Exposes the database path, storage disks and the audit settings, with
  the API key overridable from the environment.

- **audit_settings.py**: Frozen AuditSettings snapshot holding every pipeline
  option and its default, plus the built-in system prompt.
"""

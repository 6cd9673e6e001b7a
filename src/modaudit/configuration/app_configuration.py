from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from modaudit.configuration.audit_settings import DEFAULT_STORAGE_DISKS, AuditSettings
from modaudit.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

API_KEY_ENV = "MODAUDIT_API_KEY"


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and resolves
    the ``audit`` section into an immutable :class:`AuditSettings` snapshot.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path = CONFIG_PATH) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.warning("[APP CONFIGURATION] Ignoring non-mapping config in %s", self.config_path)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file and replace the in-memory cache."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Path of the SQLite database file (``database.path``)."""
        section = self._data.get("database", {})
        value = section.get("path") if isinstance(section, dict) else None
        return Path(value or "./data/modaudit.db").resolve()

    @property
    def storage_disks(self) -> Dict[str, str]:
        """Disk name to directory mapping, layered over the built-in disks."""
        disks = dict(DEFAULT_STORAGE_DISKS)
        section = self._data.get("storage", {})
        configured = section.get("disks") if isinstance(section, dict) else None
        if isinstance(configured, dict):
            disks.update({str(name): str(path) for name, path in configured.items()})
        return disks

    @property
    def settings(self) -> AuditSettings:
        """Return a fresh :class:`AuditSettings` snapshot.

        ``MODAUDIT_API_KEY`` in the environment takes precedence over
        ``audit.api_key``.
        """
        section = self._data.get("audit", {})
        raw: Dict[str, Any] = dict(section) if isinstance(section, dict) else {}

        env_key = os.getenv(API_KEY_ENV)
        if env_key:
            raw["api_key"] = env_key

        raw["storage_disks"] = self.storage_disks
        return AuditSettings.from_mapping(raw)



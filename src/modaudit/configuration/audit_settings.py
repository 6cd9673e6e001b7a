"""Immutable snapshot of the audit pipeline settings.

Every component receives one :class:`AuditSettings` at construction time.
All defaults live on the dataclass fields below.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping

DEFAULT_ENDPOINT = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

DEFAULT_SYSTEM_PROMPT = """\
You are a content moderation assistant for an online community forum. Your task is to analyze user-generated content and determine if it violates community guidelines.

Analyze the provided content and context carefully. Consider:
- Hate speech, harassment, or discrimination
- Spam or promotional content
- Inappropriate sexual content
- Violence or threats
- Personal information disclosure
- Misinformation or harmful content

Respond ONLY with a valid JSON object containing:
{
  "confidence": 0.85,
  "actions": ["hide"],
  "conclusion": "Brief explanation of your decision"
}

Fields:
- confidence: A decimal between 0.0 and 1.0 indicating violation certainty
- actions: Array of actions to take. Options: ["hide", "suspend", "none"]
- conclusion: Brief explanation (1-2 sentences)

Be strict but fair. Err on the side of caution for borderline cases."""

DEFAULT_STORAGE_DISKS: Dict[str, str] = {
    "avatars": "./storage/avatars",
    "profile-covers": "./storage/profile-covers",
    "uploads": "./storage/uploads",
}


@dataclass(frozen=True, slots=True)
class AuditSettings:
    """Typed, read-only view over the ``audit`` section of the app config."""

    api_endpoint: str = DEFAULT_ENDPOINT
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.3
    max_tokens: int = 4096
    timeout: float = 60.0
    system_prompt: str = ""
    confidence_threshold: float = 0.7
    pre_approve_enabled: bool = False
    download_images: bool = True
    suspend_days: int = 7
    default_display_name: str = ""
    default_bio: str = ""
    system_user_id: int = 1
    send_message_notification: bool = True
    message_template: str = ""
    upload_audit_enabled: bool = False
    upload_image_max_size: int = 10 * 1024 * 1024
    upload_text_max_size: int = 64 * 1024
    job_tries: int = 3
    job_backoff_seconds: float = 60.0
    worker_count: int = 4
    local_read_timeout: float = 10.0
    storage_disks: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STORAGE_DISKS))

    @property
    def effective_system_prompt(self) -> str:
        return self.system_prompt.strip() or DEFAULT_SYSTEM_PROMPT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AuditSettings":
        """Build settings from a raw mapping, coercing each value to its field type.

        Unknown keys are ignored; ``None`` or unparsable values fall back to
        the field default.
        """
        data = data or {}
        defaults = cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            default = getattr(defaults, f.name)
            values[f.name] = _coerce(data[f.name], default)
        return cls(**values)

    def replace(self, **changes: Any) -> "AuditSettings":
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(changes)
        return AuditSettings(**current)


def _coerce(value: Any, default: Any) -> Any:
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, dict):
            return {str(k): str(v) for k, v in dict(value).items()} if isinstance(value, Mapping) else default
        return str(value)
    except (TypeError, ValueError):
        return default

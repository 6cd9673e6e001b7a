"""
Normalized, LLM-ready representation of audited content.

An :class:`AuditPayload` is built by the content extractor, snapshotted
into ``AuditLog.audited_content`` and rendered into chat messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True, slots=True)
class PayloadImage:
    """One image attached to a payload.

    Exactly one of ``data`` (a ``data:<mime>;base64,...`` URI) or ``url`` is
    set.

    Raises:
        ValueError: If both or neither of ``data`` and ``url`` are given.
    """

    type: str
    data: str | None = None
    url: str | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.url is None):
            raise ValueError("PayloadImage requires exactly one of 'data' or 'url'")

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"type": self.type}
        if self.data is not None:
            entry["data"] = self.data
        else:
            entry["url"] = self.url
        if self.source:
            entry["source"] = self.source
        return entry

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PayloadImage":
        return cls(
            type=str(raw.get("type", "image")),
            data=raw.get("data"),
            url=raw.get("url"),
            source=raw.get("source"),
        )


@dataclass(slots=True)
class AuditPayload:
    """Text content, context metadata and images for one audit."""

    type: str
    content: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    images: List[PayloadImage] = field(default_factory=list)

    @property
    def has_inline_images(self) -> bool:
        return any(image.is_inline for image in self.images)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot shape stored in ``audited_content``."""
        return {
            "type": self.type,
            "content": dict(self.content),
            "context": dict(self.context),
            "images": [image.to_dict() for image in self.images],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AuditPayload":
        return cls(
            type=str(raw.get("type", "")),
            content=dict(raw.get("content") or {}),
            context=dict(raw.get("context") or {}),
            images=[PayloadImage.from_dict(item) for item in raw.get("images") or []],
        )

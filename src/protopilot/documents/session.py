"""Dataclasses describing the active document and its editable buffers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .content_mode import ContentMode, detect_content_mode

__all__ = ["DocumentRecord", "DocumentSession"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DocumentRecord:
    """The externally visible "active document" as known to the host."""

    id: str
    name: str = ""
    code: str = ""
    language: str = "python"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> DocumentRecord:
        document_id = payload.get("id")
        if not isinstance(document_id, str) or not document_id:
            raise ValueError("Document record requires a non-empty id")
        code = payload.get("code")
        return cls(
            id=document_id,
            name=str(payload.get("name") or ""),
            code=code if isinstance(code, str) else "",
            language=str(payload.get("language") or "python"),
        )


@dataclass(slots=True)
class DocumentSession:
    """Live editable state for one open document.

    ``revision`` increases on every local edit so a completed write can tell
    whether the buffer moved on while it was in flight. ``content_mode`` is
    fixed when the session is created.
    """

    document_id: str
    current_text: str = ""
    last_persisted_text: str = ""
    content_mode: ContentMode = ContentMode.FLAT_CODE
    revision: int = 0
    opened_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def for_record(cls, record: DocumentRecord) -> DocumentSession:
        text = record.code or ""
        return cls(
            document_id=record.id,
            current_text=text,
            last_persisted_text=text,
            content_mode=detect_content_mode(text),
        )

    @property
    def dirty(self) -> bool:
        return self.current_text != self.last_persisted_text

    def update_text(self, text: str) -> None:
        self.current_text = text
        self.revision += 1

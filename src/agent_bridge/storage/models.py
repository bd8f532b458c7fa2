"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    thread_id: str
    session_id: str
    driver_handle: Optional[str] = None  # tmux session name / Terminal window id
    chat_id: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    last_used_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "session_id": self.session_id,
            "driver_handle": self.driver_handle,
            "chat_id": self.chat_id,
            "created_at": self.created_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        handle = data.get("driver_handle")
        return cls(
            thread_id=str(data["thread_id"]),
            session_id=str(data["session_id"]),
            driver_handle=str(handle) if handle is not None else None,
            chat_id=str(data.get("chat_id", "")),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_used_at=datetime.fromisoformat(data["last_used_at"]),
        )

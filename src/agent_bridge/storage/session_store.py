"""Durable thread -> agent session mapping backed by one JSON file."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from agent_bridge.log import get_logger
from agent_bridge.storage.jsonfile import write_json_atomic
from agent_bridge.storage.models import SessionRecord

logger = get_logger(__name__)

STORE_VERSION = 1


class JsonSessionStore:
    """Keeps every SessionRecord in memory and rewrites the file on each change.

    Writes go to a temporary file in the same directory which is then renamed
    over the store, so a crash leaves either the old or the new document.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._sessions: dict[str, SessionRecord] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Read the store from disk. A missing or corrupt file leaves it empty."""
        self._sessions = {}
        if not self._path.exists():
            logger.info("session_store_empty", path=str(self._path))
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("session_store_unreadable", path=str(self._path), error=str(e))
            return

        raw_sessions = data.get("sessions") if isinstance(data, dict) else None
        if not isinstance(raw_sessions, dict):
            logger.warning("session_store_invalid", path=str(self._path))
            return

        for thread_id, raw in raw_sessions.items():
            try:
                record = SessionRecord.from_dict({**raw, "thread_id": thread_id})
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("session_record_skipped", thread_id=thread_id, error=str(e))
                continue
            self._sessions[thread_id] = record
        logger.info("session_store_loaded", path=str(self._path), count=len(self._sessions))

    def get(self, thread_id: str) -> SessionRecord | None:
        return self._sessions.get(thread_id)

    def all(self) -> list[SessionRecord]:
        return sorted(self._sessions.values(), key=lambda r: r.last_used_at, reverse=True)

    def put(self, record: SessionRecord) -> None:
        """Insert or replace the thread's record and persist."""
        existing = self._sessions.get(record.thread_id)
        if existing is not None and existing.session_id != record.session_id:
            raise ValueError(
                f"Thread {record.thread_id} is bound to session {existing.session_id}, "
                f"refusing to rebind to {record.session_id}"
            )
        self._sessions[record.thread_id] = record
        self._save()

    def touch(self, thread_id: str) -> None:
        """Refresh last_used_at for the thread, if it has a record."""
        record = self._sessions.get(thread_id)
        if record is None:
            return
        record.last_used_at = datetime.now(timezone.utc)
        self._save()

    def __len__(self) -> int:
        return len(self._sessions)

    def _save(self) -> None:
        document = {
            "version": STORE_VERSION,
            "sessions": {tid: r.to_dict() for tid, r in self._sessions.items()},
        }
        write_json_atomic(self._path, document)

"""Reply-chain index: which thread root every known chat message belongs to."""

from __future__ import annotations

import json
from collections import OrderedDict
from pathlib import Path

from agent_bridge.log import get_logger
from agent_bridge.storage.jsonfile import write_json_atomic

logger = get_logger(__name__)

INDEX_VERSION = 1
MAX_TRACKED_MESSAGES = 5000


class ReplyChainIndex:
    """Maps ``(chat_id, message_id)`` to the root message of its reply chain.

    Lookups and inserts refresh an entry, so the least recently used chain is
    the one dropped once the index is full. With a ``path`` the index is
    persisted after every insert and survives restarts.
    """

    def __init__(self, path: str | Path | None = None, max_entries: int = MAX_TRACKED_MESSAGES):
        self._path = Path(path) if path else None
        self._max_entries = max_entries
        self._roots: OrderedDict[str, int] = OrderedDict()

    @staticmethod
    def _key(chat_id: int, message_id: int) -> str:
        return f"{chat_id}:{message_id}"

    def load(self) -> None:
        """Read the index from disk. A missing or corrupt file leaves it empty."""
        self._roots = OrderedDict()
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("reply_index_unreadable", path=str(self._path), error=str(e))
            return

        raw_roots = data.get("roots") if isinstance(data, dict) else None
        if not isinstance(raw_roots, dict):
            logger.warning("reply_index_invalid", path=str(self._path))
            return
        for key, root in raw_roots.items():
            if isinstance(root, int):
                self._roots[key] = root
        logger.info("reply_index_loaded", path=str(self._path), count=len(self._roots))

    def root_of(self, chat_id: int, message_id: int) -> int:
        """Root of the chain containing the message; an unknown message is its own root."""
        key = self._key(chat_id, message_id)
        root = self._roots.get(key)
        if root is None:
            return message_id
        self._roots.move_to_end(key)
        return root

    def remember(self, chat_id: int, message_id: int, root: int) -> None:
        key = self._key(chat_id, message_id)
        self._roots[key] = root
        self._roots.move_to_end(key)
        while len(self._roots) > self._max_entries:
            self._roots.popitem(last=False)
        self._save()

    def __len__(self) -> int:
        return len(self._roots)

    def _save(self) -> None:
        if self._path is None:
            return
        write_json_atomic(self._path, {"version": INDEX_VERSION, "roots": dict(self._roots)})

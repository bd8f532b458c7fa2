"""Agent transcript reading and turn classification.

The agent appends one JSON object per line to a per-session transcript at
``<projects_dir>/<sanitized working dir>/<session_id>.jsonl``. Entries of
interest have ``type`` ``"user"`` or ``"assistant"`` and carry a ``message``
whose ``content`` is either a string or a list of blocks:

- ``{"type": "text", "text": ...}``
- ``{"type": "tool_use", "id": ..., "name": ..., "input": {...}}``
- ``{"type": "tool_result", "tool_use_id": ...}``

The reader never writes the transcript and keeps no state between calls, so
it is safe to poll at a fixed cadence.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from agent_bridge.core.questions import Question, parse_questions
from agent_bridge.core.types import TurnState
from agent_bridge.errors import MalformedEntry, TranscriptUnreadable
from agent_bridge.log import get_logger

logger = get_logger(__name__)

ROLE_USER = "user"
ROLE_AGENT = "agent"

_ROLE_BY_TYPE = {"user": ROLE_USER, "assistant": ROLE_AGENT}


@dataclass(slots=True)
class ContentBlock:
    kind: str  # "text" | "tool_invocation" | "tool_result"
    text: str = ""
    name: str = ""
    invocation_id: str = ""
    input: Any = None


@dataclass(slots=True)
class TranscriptEntry:
    role: str
    content: list[ContentBlock]
    line_index: int
    message_id: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if b.kind == "text" and b.text)

    @property
    def tool_invocations(self) -> list[ContentBlock]:
        return [b for b in self.content if b.kind == "tool_invocation"]

    @property
    def tool_result_ids(self) -> set[str]:
        return {b.invocation_id for b in self.content if b.kind == "tool_result"}

    @property
    def is_prompt(self) -> bool:
        """A user turn typed by a human rather than a tool result."""
        if self.role != ROLE_USER or self.tool_result_ids:
            return False
        return any(b.kind == "text" and b.text.strip() for b in self.content)


@dataclass(frozen=True, slots=True)
class Classification:
    state: TurnState
    cursor: int
    text: str = ""
    questions: list[Question] = field(default_factory=list)
    invocation_id: Optional[str] = None


class TranscriptSource(ABC):
    """Read access to a session's transcript lines."""

    @abstractmethod
    def read_lines(self, session_id: str) -> list[str]:
        """Return every complete line of the transcript.

        Raises FileNotFoundError if the transcript does not exist yet and
        TranscriptUnreadable if it exists but cannot be read.
        """
        ...

    def line_count(self, session_id: str) -> int:
        try:
            return len(self.read_lines(session_id))
        except (FileNotFoundError, TranscriptUnreadable):
            return 0


def sanitize_project_path(path: str) -> str:
    """Directory name the agent uses for a working directory."""
    return re.sub(r"[^A-Za-z0-9]", "-", path)


class ClaudeTranscriptSource(TranscriptSource):
    """Transcripts written by the claude CLI under ``~/.claude/projects``."""

    def __init__(self, projects_dir: str | Path, working_dir: str | Path):
        self._projects_dir = Path(projects_dir).expanduser()
        self._working_dir = str(Path(working_dir).expanduser().resolve())

    def path_for(self, session_id: str) -> Path | None:
        expected = self._projects_dir / sanitize_project_path(self._working_dir) / f"{session_id}.jsonl"
        if expected.exists():
            return expected
        # The CLI may have been started from another directory
        for candidate in self._projects_dir.glob(f"*/{session_id}.jsonl"):
            return candidate
        return None

    def read_lines(self, session_id: str) -> list[str]:
        path = self.path_for(session_id)
        if path is None:
            raise FileNotFoundError(f"Transcript not found for session: {session_id}")
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            raise
        except OSError as e:
            raise TranscriptUnreadable(f"Cannot read transcript {path}: {e}") from e
        lines = text.split("\n")
        # The final element is "" when the file ends in a newline, otherwise a
        # line still being written; either way it is not complete yet.
        return lines[:-1]


class MemoryTranscriptSource(TranscriptSource):
    """In-memory transcripts keyed by session id."""

    def __init__(self) -> None:
        self._lines: dict[str, list[str]] = {}

    def append(self, session_id: str, *records: dict[str, Any] | str) -> None:
        lines = self._lines.setdefault(session_id, [])
        for record in records:
            lines.append(record if isinstance(record, str) else json.dumps(record))

    def read_lines(self, session_id: str) -> list[str]:
        if session_id not in self._lines:
            raise FileNotFoundError(f"Transcript not found for session: {session_id}")
        return list(self._lines[session_id])


def parse_line(line: str, line_index: int) -> TranscriptEntry | None:
    """Parse one transcript line.

    Returns None for lines that are not conversation turns (summaries, system
    and progress records, sub-agent sidechains, meta messages). Raises
    MalformedEntry for lines that cannot be interpreted.
    """
    if not line.strip():
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedEntry(f"line {line_index}: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedEntry(f"line {line_index}: not an object")

    role = _ROLE_BY_TYPE.get(raw.get("type", ""))
    if role is None or raw.get("isSidechain") or raw.get("isMeta"):
        return None

    message = raw.get("message")
    if not isinstance(message, dict):
        raise MalformedEntry(f"line {line_index}: missing message")

    content = message.get("content")
    blocks: list[ContentBlock] = []
    if isinstance(content, str):
        blocks.append(ContentBlock(kind="text", text=content))
    elif isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                blocks.append(ContentBlock(kind="text", text=str(block.get("text", ""))))
            elif block_type == "tool_use":
                blocks.append(
                    ContentBlock(
                        kind="tool_invocation",
                        name=str(block.get("name", "")),
                        invocation_id=str(block.get("id", "")),
                        input=block.get("input"),
                    )
                )
            elif block_type == "tool_result":
                blocks.append(
                    ContentBlock(kind="tool_result", invocation_id=str(block.get("tool_use_id", "")))
                )
    else:
        raise MalformedEntry(f"line {line_index}: unsupported content")

    message_id = message.get("id")
    return TranscriptEntry(
        role=role,
        content=blocks,
        line_index=line_index,
        message_id=message_id if isinstance(message_id, str) else None,
    )


def parse_entries(lines: list[str]) -> list[TranscriptEntry]:
    """Parse lines into entries, skipping malformed ones.

    Consecutive agent lines that share a message id are one streamed message
    and are merged into a single entry.
    """
    entries: list[TranscriptEntry] = []
    skipped = 0
    for index, line in enumerate(lines):
        try:
            entry = parse_line(line, index)
        except MalformedEntry:
            skipped += 1
            continue
        if entry is None:
            continue
        previous = entries[-1] if entries else None
        if (
            previous is not None
            and entry.role == ROLE_AGENT
            and previous.role == ROLE_AGENT
            and entry.message_id is not None
            and entry.message_id == previous.message_id
        ):
            previous.content.extend(entry.content)
            continue
        entries.append(entry)
    if skipped:
        logger.debug("transcript_lines_skipped", count=skipped)
    return entries


class TranscriptReader:
    """Decides whether the agent's newest turn is pending, final, or blocked on a question."""

    def __init__(self, source: TranscriptSource, clarification_tool: str = "AskUserQuestion"):
        self._source = source
        self._clarification_tool = clarification_tool

    @property
    def source(self) -> TranscriptSource:
        return self._source

    def line_count(self, session_id: str) -> int:
        return self._source.line_count(session_id)

    def classify(self, session_id: str, cursor: int = 0, floor: int = 0) -> Classification:
        """Classify the newest agent turn at or after line ``floor``.

        ``cursor`` is the line count seen by the previous call; when no line
        has been added since, the transcript is not re-scanned and the returned
        cursor equals the one passed in.
        """
        try:
            lines = self._source.read_lines(session_id)
        except FileNotFoundError:
            return Classification(state=TurnState.PENDING, cursor=cursor)

        if len(lines) == cursor:
            return Classification(state=TurnState.PENDING, cursor=cursor)

        return self._decide(parse_entries(lines), floor=floor, cursor=len(lines))

    def _decide(self, entries: list[TranscriptEntry], floor: int, cursor: int) -> Classification:
        pending = Classification(state=TurnState.PENDING, cursor=cursor)
        resolved: set[str] = set()

        for entry in reversed(entries):
            if entry.role == ROLE_USER:
                if entry.is_prompt:
                    # Newest prompt has no agent answer yet
                    return pending
                resolved |= entry.tool_result_ids
                continue

            if entry.line_index < floor:
                return pending

            invocations = entry.tool_invocations
            clarifications = [b for b in invocations if b.name == self._clarification_tool]
            if clarifications:
                open_questions = [b for b in clarifications if b.invocation_id not in resolved]
                if not open_questions:
                    return pending
                invocation = open_questions[-1]
                return Classification(
                    state=TurnState.BLOCKED_ON_QUESTION,
                    cursor=cursor,
                    questions=parse_questions(invocation.input),
                    invocation_id=invocation.invocation_id,
                )

            if any(b.invocation_id not in resolved for b in invocations):
                return pending

            text = entry.text.strip()
            if text:
                return Classification(state=TurnState.FINAL, cursor=cursor, text=text)
            return pending

        return pending

"""Exceptions raised by the bridge core and its collaborators."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all agent-bridge errors."""


class SessionNotFound(BridgeError):
    """No session is recorded for the thread."""

    def __init__(self, thread_id: str):
        super().__init__(f"No session recorded for thread: {thread_id}")
        self.thread_id = thread_id


class DriverError(BridgeError):
    """A driver command (tmux, osascript, ...) failed."""


class DriverUnavailable(BridgeError):
    """The interactive surface is gone and could not be brought back."""

    def __init__(self, thread_id: str, reason: str = ""):
        message = f"Agent surface unavailable for thread: {thread_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.thread_id = thread_id


class AgentTimeout(BridgeError):
    """The agent did not finish its turn within the poll budget."""

    def __init__(self, thread_id: str, timeout: float):
        super().__init__(f"Timed out after {timeout:g}s waiting for agent (thread {thread_id})")
        self.thread_id = thread_id
        self.timeout = timeout


class TranscriptUnreadable(BridgeError):
    """The transcript exists but could not be read."""


class MalformedEntry(BridgeError):
    """A transcript line could not be parsed into an entry."""


class ThreadBusy(BridgeError):
    """An operation is already in flight (or a question is open) for the thread."""

    def __init__(self, thread_id: str, state: str):
        super().__init__(f"Thread {thread_id} is busy ({state})")
        self.thread_id = thread_id
        self.state = state


class NoPendingQuestion(BridgeError):
    """An answer arrived for a thread with no open clarification."""

    def __init__(self, thread_id: str):
        super().__init__(f"No pending question for thread: {thread_id}")
        self.thread_id = thread_id

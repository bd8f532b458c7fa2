"""Shared fixtures: an in-memory agent surface and transcript."""

from __future__ import annotations

from typing import Any

import pytest

from agent_bridge.config import AgentConfig, BotConfig, DriverConfig
from agent_bridge.core.encoder import Action
from agent_bridge.core.orchestrator import ResponseOrchestrator
from agent_bridge.core.questions import Question
from agent_bridge.core.tracker import PendingQuestionTracker
from agent_bridge.core.transcript import MemoryTranscriptSource, TranscriptReader
from agent_bridge.driver.base import AgentDriver
from agent_bridge.errors import DriverError
from agent_bridge.messenger.base import MessengerAdapter
from agent_bridge.messenger.models import OutgoingMessage
from agent_bridge.storage.session_store import JsonSessionStore


def user_prompt(text: str) -> dict[str, Any]:
    return {"type": "user", "message": {"role": "user", "content": text}}


def agent_text(text: str, message_id: str | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": [{"type": "text", "text": text}]}
    if message_id:
        message["id"] = message_id
    return {"type": "assistant", "message": message}


def agent_tool(name: str, invocation_id: str, tool_input: Any = None, message_id: str | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {
        "role": "assistant",
        "content": [{"type": "tool_use", "id": invocation_id, "name": name, "input": tool_input or {}}],
    }
    if message_id:
        message["id"] = message_id
    return {"type": "assistant", "message": message}


def tool_result(invocation_id: str, content: str = "ok") -> dict[str, Any]:
    return {
        "type": "user",
        "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": invocation_id, "content": content}],
        },
    }


def ask_question(invocation_id: str, *questions: dict[str, Any]) -> dict[str, Any]:
    return agent_tool("AskUserQuestion", invocation_id, {"questions": list(questions)})


def question_item(prompt: str, labels: list[str], header: str | None = None, multi: bool = False) -> dict[str, Any]:
    item: dict[str, Any] = {
        "question": prompt,
        "options": [{"label": label, "description": f"{label} option"} for label in labels],
        "multiSelect": multi,
    }
    if header:
        item["header"] = header
    return item


class FakeDriver(AgentDriver):
    """Records every call; scripted transcript lines are appended on delivery."""

    def __init__(self, source: MemoryTranscriptSource):
        super().__init__(AgentConfig(), DriverConfig())
        self.source = source
        self.calls: list[tuple] = []
        self.alive: set[str] = set()
        self.fail_delivery = False
        self.fail_open = False
        self.cleaned: list[str] = []
        self._counter = 0
        # Records appended to the transcript on the next delivery
        self.on_deliver: list[list[dict[str, Any]]] = []
        self.session_ids: dict[str, str] = {}

    def _next_handle(self) -> str:
        self._counter += 1
        handle = f"surface-{self._counter}"
        self.alive.add(handle)
        return handle

    def _respond(self, handle: str) -> None:
        session_id = self.session_ids[handle]
        if self.on_deliver:
            self.source.append(session_id, *self.on_deliver.pop(0))

    async def open_session(self, thread_id: str, session_id: str, working_dir: str, initial_message: str) -> str:
        self.calls.append(("open", thread_id, session_id, initial_message))
        if self.fail_open:
            raise DriverError("cannot open surface")
        handle = self._next_handle()
        self.session_ids[handle] = session_id
        self.source.append(session_id, user_prompt(initial_message))
        self._respond(handle)
        return handle

    async def resume_session(self, thread_id: str, session_id: str, working_dir: str) -> str:
        self.calls.append(("resume", thread_id, session_id))
        if self.fail_open:
            raise DriverError("cannot open surface")
        handle = self._next_handle()
        self.session_ids[handle] = session_id
        return handle

    async def is_alive(self, handle: str) -> bool:
        return handle in self.alive

    async def deliver_text(self, handle: str, text: str) -> None:
        self.calls.append(("text", handle, text))
        if self.fail_delivery:
            raise DriverError("surface rejected input")
        self.source.append(self.session_ids[handle], user_prompt(text))
        self._respond(handle)

    async def deliver_actions(self, handle: str, actions: list[Action]) -> None:
        self.calls.append(("actions", handle, list(actions)))
        if self.fail_delivery:
            raise DriverError("surface rejected input")
        self._respond(handle)

    async def cleanup(self, thread_id: str) -> None:
        self.cleaned.append(thread_id)

    def kill(self, handle: str) -> None:
        self.alive.discard(handle)


class FakeAdapter(MessengerAdapter):
    """Collects everything the handler sends."""

    def __init__(self, bot_id: str = "bot", config: dict | None = None):
        super().__init__(bot_id, config or {})
        self.sent: list[OutgoingMessage] = []
        self.questions: list[tuple[str, list[Question]]] = []
        self.typing: list[str] = []

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def send_message(self, message: OutgoingMessage) -> None:
        self.sent.append(message)

    async def send_question(self, thread_id: str, questions: list[Question]) -> None:
        self.questions.append((thread_id, questions))

    async def send_typing_indicator(self, thread_id: str) -> None:
        self.typing.append(thread_id)

    @property
    def platform_name(self) -> str:
        return "fake"

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.sent]


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(timeout=0.5, poll_interval=0.01, final_settle_polls=1, startup_delay=0)


@pytest.fixture
def source() -> MemoryTranscriptSource:
    return MemoryTranscriptSource()


@pytest.fixture
def reader(source: MemoryTranscriptSource) -> TranscriptReader:
    return TranscriptReader(source)


@pytest.fixture
def driver(source: MemoryTranscriptSource) -> FakeDriver:
    return FakeDriver(source)


@pytest.fixture
def store(tmp_path) -> JsonSessionStore:
    store = JsonSessionStore(tmp_path / "sessions.json")
    store.load()
    return store


@pytest.fixture
def tracker() -> PendingQuestionTracker:
    return PendingQuestionTracker(stale_after=300, sweep_interval=60)


@pytest.fixture
def orchestrator(driver, store, reader, tracker, agent_config) -> ResponseOrchestrator:
    return ResponseOrchestrator(driver=driver, store=store, reader=reader, tracker=tracker, config=agent_config)


@pytest.fixture
def bot_config() -> BotConfig:
    return BotConfig(id="bot", platform="telegram", token="t")

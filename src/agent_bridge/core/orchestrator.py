"""Response orchestration: sessions, delivery, and waiting for the agent's turn."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Union

from agent_bridge.config import AgentConfig
from agent_bridge.core.encoder import QuestionSelection, encode
from agent_bridge.core.questions import Question, needs_free_text
from agent_bridge.core.tracker import PendingQuestionState, PendingQuestionTracker
from agent_bridge.core.transcript import Classification, TranscriptReader
from agent_bridge.core.types import ThreadState, TurnState
from agent_bridge.driver.base import AgentDriver
from agent_bridge.errors import (
    AgentTimeout,
    DriverError,
    DriverUnavailable,
    SessionNotFound,
    ThreadBusy,
    TranscriptUnreadable,
)
from agent_bridge.log import get_logger
from agent_bridge.storage.models import SessionRecord
from agent_bridge.storage.session_store import JsonSessionStore

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class FinalResult:
    thread_id: str
    text: str


@dataclass(frozen=True, slots=True)
class QuestionResult:
    thread_id: str
    session_id: str
    invocation_id: str
    questions: list[Question] = field(default_factory=list)
    # No buttons can answer these; the user replies with a normal message
    free_text: bool = False


WaitResult = Union[FinalResult, QuestionResult]


class ResponseOrchestrator:
    """Owns every thread's state and is the only writer of sessions and open questions.

    Each thread moves IDLE -> STARTING/RESUMING -> WAITING -> BLOCKED/IDLE, and
    BLOCKED -> ANSWERING_SUBMITTED -> WAITING. Operations not allowed from the
    current state are rejected with ThreadBusy.
    """

    def __init__(
        self,
        driver: AgentDriver,
        store: JsonSessionStore,
        reader: TranscriptReader,
        tracker: PendingQuestionTracker,
        config: AgentConfig,
    ):
        self._driver = driver
        self._store = store
        self._reader = reader
        self._tracker = tracker
        self._config = config
        self._states: dict[str, ThreadState] = {}
        tracker.set_evict_callback(self.release)

    @property
    def tracker(self) -> PendingQuestionTracker:
        return self._tracker

    @property
    def store(self) -> JsonSessionStore:
        return self._store

    def state_of(self, thread_id: str) -> ThreadState:
        return self._states.get(thread_id, ThreadState.IDLE)

    def is_busy(self, thread_id: str) -> bool:
        return self.state_of(thread_id) is not ThreadState.IDLE

    def has_session(self, thread_id: str) -> bool:
        return self._store.get(thread_id) is not None

    def release(self, thread_id: str) -> None:
        """Return a thread whose open question was abandoned to IDLE."""
        if self.state_of(thread_id) is ThreadState.BLOCKED:
            self._set_state(thread_id, ThreadState.IDLE)

    def _set_state(self, thread_id: str, state: ThreadState) -> None:
        if state is ThreadState.IDLE:
            self._states.pop(thread_id, None)
        else:
            self._states[thread_id] = state
        logger.debug("thread_state", thread_id=thread_id, state=state.value)

    def _enter(self, thread_id: str, expected: ThreadState, new_state: ThreadState) -> None:
        current = self.state_of(thread_id)
        if current is not expected:
            raise ThreadBusy(thread_id, current.value)
        self._set_state(thread_id, new_state)

    async def execute_new(self, message: str, thread_id: str, chat_id: str = "") -> WaitResult:
        """Start a new agent session for the thread and wait for its first turn."""
        self._enter(thread_id, ThreadState.IDLE, ThreadState.STARTING)
        try:
            session_id = str(uuid.uuid4())
            logger.info("session_starting", thread_id=thread_id, session_id=session_id)
            try:
                handle = await self._driver.open_session(
                    thread_id, session_id, self._config.working_dir, message
                )
            except DriverError as e:
                raise DriverUnavailable(thread_id, str(e)) from e

            record = SessionRecord(
                thread_id=thread_id,
                session_id=session_id,
                driver_handle=handle,
                chat_id=chat_id,
            )
            self._store.put(record)
            logger.info("session_created", thread_id=thread_id, session_id=session_id, handle=handle)

            self._set_state(thread_id, ThreadState.WAITING)
            return await self._wait_for_turn(record, floor=0)
        except BaseException:
            self._reset_unless_blocked(thread_id)
            raise

    async def execute_resume(self, message: str, thread_id: str) -> WaitResult:
        """Deliver a follow-up message to the thread's existing session."""
        record = self._store.get(thread_id)
        if record is None:
            raise SessionNotFound(thread_id)

        self._enter(thread_id, ThreadState.IDLE, ThreadState.RESUMING)
        try:
            # Earlier turns' answers are below this line and must not count
            floor = self._reader.line_count(record.session_id)

            alive = record.driver_handle is not None and await self._driver.is_alive(record.driver_handle)
            if alive:
                try:
                    await self._driver.deliver_text(record.driver_handle, message)
                except DriverError as e:
                    logger.warning("delivery_failed", thread_id=thread_id, error=str(e))
                    await self._recover(record, message)
            else:
                await self._recover(record, message)

            self._store.touch(thread_id)
            self._set_state(thread_id, ThreadState.WAITING)
            return await self._wait_for_turn(record, floor=floor)
        except BaseException:
            self._reset_unless_blocked(thread_id)
            raise

    async def _recover(self, record: SessionRecord, message: str) -> None:
        """Reopen the session on a fresh surface and redeliver the message."""
        logger.info(
            "session_recovering",
            thread_id=record.thread_id,
            session_id=record.session_id,
            stale_handle=record.driver_handle,
        )
        try:
            handle = await self._driver.resume_session(
                record.thread_id, record.session_id, self._config.working_dir
            )
            record.driver_handle = handle
            self._store.put(record)
            await self._driver.deliver_text(handle, message)
        except DriverError as e:
            raise DriverUnavailable(record.thread_id, str(e)) from e
        logger.info("session_recovered", thread_id=record.thread_id, handle=record.driver_handle)

    async def submit_answer(self, thread_id: str, selections: list[QuestionSelection]) -> WaitResult:
        """Type the user's answers into the open question prompt and wait for the next turn."""
        record = self._store.get(thread_id)
        if record is None:
            raise SessionNotFound(thread_id)

        self._enter(thread_id, ThreadState.BLOCKED, ThreadState.ANSWERING_SUBMITTED)
        try:
            # The question prompt only exists on the surface that raised it
            if record.driver_handle is None or not await self._driver.is_alive(record.driver_handle):
                raise DriverUnavailable(thread_id, "surface closed while a question was open")

            actions = encode(selections)
            floor = self._reader.line_count(record.session_id)
            try:
                await self._driver.deliver_actions(record.driver_handle, actions)
            except DriverError as e:
                raise DriverUnavailable(thread_id, str(e)) from e
            logger.info("answer_submitted", thread_id=thread_id, actions=len(actions))

            self._set_state(thread_id, ThreadState.WAITING)
            return await self._wait_for_turn(record, floor=floor)
        except BaseException:
            self._reset_unless_blocked(thread_id)
            raise

    def _reset_unless_blocked(self, thread_id: str) -> None:
        if self.state_of(thread_id) is not ThreadState.BLOCKED:
            self._set_state(thread_id, ThreadState.IDLE)

    async def _wait_for_turn(self, record: SessionRecord, floor: int) -> WaitResult:
        """Poll the transcript until the agent finishes or asks a question.

        A final answer is only accepted once the transcript has stayed
        unchanged for ``final_settle_polls`` further polls, since the agent
        may still append tool calls to the same turn.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.timeout
        cursor = 0
        latest: Classification | None = None
        unchanged_polls = 0

        while True:
            try:
                result = self._reader.classify(record.session_id, cursor, floor=floor)
            except TranscriptUnreadable as e:
                logger.debug("transcript_unreadable", thread_id=record.thread_id, error=str(e))
                result = None

            if result is not None:
                if result.cursor != cursor:
                    cursor = result.cursor
                    latest = result
                    unchanged_polls = 0
                else:
                    unchanged_polls += 1

            if latest is not None:
                if latest.state is TurnState.BLOCKED_ON_QUESTION:
                    return self._blocked(record, latest)
                if latest.state is TurnState.FINAL and unchanged_polls >= self._config.final_settle_polls:
                    return await self._finished(record, latest)

            if loop.time() >= deadline:
                logger.warning("agent_timeout", thread_id=record.thread_id, timeout=self._config.timeout)
                raise AgentTimeout(record.thread_id, self._config.timeout)

            await asyncio.sleep(self._config.poll_interval)

    def _blocked(self, record: SessionRecord, result: Classification) -> QuestionResult:
        if needs_free_text(result.questions):
            return self._awaiting_free_text(record, result)

        state = PendingQuestionState(
            thread_id=record.thread_id,
            session_id=record.session_id,
            invocation_id=result.invocation_id or "",
            questions=list(result.questions),
        )
        self._tracker.open(state)
        self._store.touch(record.thread_id)
        self._set_state(record.thread_id, ThreadState.BLOCKED)
        logger.info(
            "agent_blocked_on_question",
            thread_id=record.thread_id,
            invocation_id=state.invocation_id,
            questions=len(state.questions),
        )
        return QuestionResult(
            thread_id=record.thread_id,
            session_id=record.session_id,
            invocation_id=state.invocation_id,
            questions=state.questions,
        )

    def _awaiting_free_text(self, record: SessionRecord, result: Classification) -> QuestionResult:
        """The prompt accepts typed input, so the thread stays open for a normal reply."""
        self._store.touch(record.thread_id)
        self._set_state(record.thread_id, ThreadState.IDLE)
        logger.info(
            "agent_waiting_for_free_text",
            thread_id=record.thread_id,
            invocation_id=result.invocation_id,
            questions=len(result.questions),
        )
        return QuestionResult(
            thread_id=record.thread_id,
            session_id=record.session_id,
            invocation_id=result.invocation_id or "",
            questions=list(result.questions),
            free_text=True,
        )

    async def _finished(self, record: SessionRecord, result: Classification) -> FinalResult:
        self._store.touch(record.thread_id)
        self._set_state(record.thread_id, ThreadState.IDLE)
        logger.info("agent_turn_final", thread_id=record.thread_id, length=len(result.text))
        try:
            await self._driver.cleanup(record.thread_id)
        except Exception as e:
            logger.warning("driver_cleanup_failed", thread_id=record.thread_id, error=str(e))
        return FinalResult(thread_id=record.thread_id, text=result.text)

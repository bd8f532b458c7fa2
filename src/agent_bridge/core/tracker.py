"""Per-thread answer accumulation for open clarification questions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from agent_bridge.core.encoder import QuestionSelection
from agent_bridge.core.questions import Question
from agent_bridge.errors import NoPendingQuestion
from agent_bridge.log import get_logger

if TYPE_CHECKING:
    from agent_bridge.services.scheduler import SchedulerService

logger = get_logger(__name__)

SWEEP_JOB_ID = "pending_question_sweep"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingQuestionState:
    thread_id: str
    session_id: str
    invocation_id: str
    questions: list[Question]
    selected_labels: list[list[str]] = field(default_factory=list)
    selected_indices: list[list[int]] = field(default_factory=list)
    confirmed: list[bool] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        count = len(self.questions)
        if not self.selected_labels:
            self.selected_labels = [[] for _ in range(count)]
        if not self.selected_indices:
            self.selected_indices = [[] for _ in range(count)]
        if not self.confirmed:
            self.confirmed = [False] * count

    def is_answered(self, question_index: int) -> bool:
        if not self.selected_indices[question_index]:
            return False
        if self.questions[question_index].multi_select:
            return self.confirmed[question_index]
        return True


class PendingQuestionTracker:
    """Holds partial answers until every question of a thread is answered.

    Entries older than ``stale_after`` seconds are dropped by a periodic sweep
    without telling the chat or the agent.
    """

    def __init__(
        self,
        stale_after: float = 300.0,
        sweep_interval: float = 60.0,
        on_evict: Optional[Callable[[str], None]] = None,
    ):
        self._pending: dict[str, PendingQuestionState] = {}
        self._stale_after = timedelta(seconds=stale_after)
        self._sweep_interval = sweep_interval
        self._on_evict = on_evict

    def set_evict_callback(self, callback: Callable[[str], None]) -> None:
        self._on_evict = callback

    def start(self, scheduler: SchedulerService) -> None:
        """Register the staleness sweep on the scheduler."""
        scheduler.add_interval_job(self._sweep_job, seconds=self._sweep_interval, job_id=SWEEP_JOB_ID)

    async def _sweep_job(self) -> None:
        self.sweep()

    def open(self, state: PendingQuestionState) -> None:
        self._pending[state.thread_id] = state
        logger.info(
            "question_opened",
            thread_id=state.thread_id,
            invocation_id=state.invocation_id,
            questions=len(state.questions),
        )

    def get(self, thread_id: str) -> PendingQuestionState | None:
        return self._pending.get(thread_id)

    def discard(self, thread_id: str) -> PendingQuestionState | None:
        return self._pending.pop(thread_id, None)

    def __contains__(self, thread_id: str) -> bool:
        return thread_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def _require(self, thread_id: str) -> PendingQuestionState:
        state = self._pending.get(thread_id)
        if state is None:
            raise NoPendingQuestion(thread_id)
        return state

    def record_selection(
        self,
        thread_id: str,
        question_index: int,
        option_index: int,
        label: Optional[str] = None,
    ) -> PendingQuestionState:
        """Apply one option click.

        Multi-select questions toggle the option; single-select questions
        replace the previous choice.
        """
        state = self._require(thread_id)
        if not 0 <= question_index < len(state.questions):
            raise IndexError(f"Question index {question_index} out of range")
        question = state.questions[question_index]
        if question.options and not 0 <= option_index < len(question.options):
            raise IndexError(f"Option index {option_index} out of range")
        if label is None:
            label = question.options[option_index].label if question.options else str(option_index)

        labels = state.selected_labels[question_index]
        indices = state.selected_indices[question_index]

        if question.multi_select:
            if option_index in indices:
                indices.remove(option_index)
                if label in labels:
                    labels.remove(label)
                logger.info("option_deselected", thread_id=thread_id, question=question_index, option=option_index)
            else:
                indices.append(option_index)
                labels.append(label)
                logger.info("option_selected", thread_id=thread_id, question=question_index, option=option_index)
        else:
            state.selected_labels[question_index] = [label]
            state.selected_indices[question_index] = [option_index]
            logger.info("answer_recorded", thread_id=thread_id, question=question_index, option=option_index)

        return state

    def confirm(self, thread_id: str, question_index: int) -> bool:
        """Mark a question confirmed. Returns False if nothing is selected."""
        state = self._require(thread_id)
        if not 0 <= question_index < len(state.questions):
            raise IndexError(f"Question index {question_index} out of range")
        if not state.selected_indices[question_index]:
            return False
        state.confirmed[question_index] = True
        logger.info("question_confirmed", thread_id=thread_id, question=question_index)
        return True

    def is_complete(self, thread_id: str) -> bool:
        state = self._require(thread_id)
        return all(state.is_answered(i) for i in range(len(state.questions)))

    def remaining(self, thread_id: str) -> int:
        state = self._require(thread_id)
        return sum(1 for i in range(len(state.questions)) if not state.is_answered(i))

    def selections(self, thread_id: str) -> list[QuestionSelection]:
        state = self._require(thread_id)
        return [
            QuestionSelection(
                question_index=i,
                selected_indices=list(state.selected_indices[i]),
                is_multi_select=q.multi_select,
                option_count=len(q.options),
            )
            for i, q in enumerate(state.questions)
        ]

    def summary(self, thread_id: str) -> list[tuple[str, list[str]]]:
        state = self._require(thread_id)
        return [(q.title, list(state.selected_labels[i])) for i, q in enumerate(state.questions)]

    def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Drop entries older than the staleness threshold."""
        now = now or _utcnow()
        stale = [
            thread_id
            for thread_id, state in self._pending.items()
            if now - state.created_at > self._stale_after
        ]
        for thread_id in stale:
            del self._pending[thread_id]
            logger.info("question_evicted", thread_id=thread_id)
            if self._on_evict is not None:
                self._on_evict(thread_id)
        return stale

"""Bridge handler: routes chat events to the orchestrator and results back to the chat."""

from __future__ import annotations

from agent_bridge.config import BotConfig
from agent_bridge.core.orchestrator import FinalResult, QuestionResult, ResponseOrchestrator, WaitResult
from agent_bridge.errors import AgentTimeout, BridgeError, NoPendingQuestion, ThreadBusy
from agent_bridge.log import get_logger
from agent_bridge.messenger.base import CONFIRM_LABEL, MessengerAdapter
from agent_bridge.messenger.models import ButtonClick, ConfirmClick, IncomingMessage, OutgoingMessage

logger = get_logger(__name__)


class BridgeHandler:
    """Handles the full flow for one bot: message -> session -> agent -> reply or question."""

    def __init__(
        self,
        adapter: MessengerAdapter,
        orchestrator: ResponseOrchestrator,
        bot_config: BotConfig,
    ):
        self._adapter = adapter
        self._orchestrator = orchestrator
        self._bot_config = bot_config

    def attach(self) -> None:
        """Register this handler's callbacks on the adapter."""
        self._adapter.on_message(self.handle_message)
        self._adapter.on_button(self.handle_button)
        self._adapter.on_confirm(self.handle_confirm)

    def thread_key(self, thread_id: str) -> str:
        """Thread id as known to the core, namespaced by bot."""
        return f"{self._bot_config.id}:{thread_id}"

    async def handle_message(self, message: IncomingMessage) -> None:
        text = message.text.strip()
        if not text:
            return

        key = self.thread_key(message.thread_id)
        if self._orchestrator.is_busy(key):
            logger.info(
                "message_rejected_busy",
                thread_id=key,
                state=self._orchestrator.state_of(key).value,
            )
            return

        await self._adapter.send_typing_indicator(message.thread_id)

        try:
            if self._orchestrator.has_session(key):
                result = await self._orchestrator.execute_resume(text, key)
            else:
                result = await self._orchestrator.execute_new(text, key, chat_id=message.chat_id)
        except ThreadBusy as e:
            logger.info("message_rejected_busy", thread_id=key, state=e.state)
            return
        except AgentTimeout as e:
            await self._post_timeout(message.thread_id, e)
            return
        except BridgeError as e:
            logger.error("bridge_error", thread_id=key, error=str(e), kind=type(e).__name__)
            return

        await self._deliver(message.thread_id, result)

    async def handle_button(self, click: ButtonClick) -> None:
        key = self.thread_key(click.thread_id)
        tracker = self._orchestrator.tracker
        try:
            state = tracker.record_selection(key, click.question_index, click.option_index, click.label)
        except NoPendingQuestion:
            logger.warning("answer_without_question", thread_id=key)
            return
        except IndexError as e:
            logger.warning("answer_out_of_range", thread_id=key, error=str(e))
            return

        question = state.questions[click.question_index]
        if question.multi_select:
            selected = ", ".join(state.selected_labels[click.question_index]) or "(none)"
            await self._post(
                click.thread_id,
                f'{question.title}: {selected}\nPress "{CONFIRM_LABEL}" to confirm.',
            )
            return

        if tracker.is_complete(key):
            await self._submit(click.thread_id, key)
        else:
            await self._post(
                click.thread_id,
                f"Answer recorded. {tracker.remaining(key)} question(s) left.",
            )

    async def handle_confirm(self, click: ConfirmClick) -> None:
        key = self.thread_key(click.thread_id)
        tracker = self._orchestrator.tracker
        state = tracker.get(key)
        if state is None:
            logger.warning("confirm_without_question", thread_id=key)
            return
        if not 0 <= click.question_index < len(state.questions):
            logger.warning("confirm_out_of_range", thread_id=key, question=click.question_index)
            return

        if not tracker.confirm(key, click.question_index):
            title = state.questions[click.question_index].title
            await self._post(click.thread_id, f"{title}: select at least one option.")
            return

        if tracker.is_complete(key):
            await self._submit(click.thread_id, key)
        else:
            await self._post(
                click.thread_id,
                f"Selection confirmed. {tracker.remaining(key)} question(s) left.",
            )

    async def _submit(self, thread_id: str, key: str) -> None:
        tracker = self._orchestrator.tracker
        summary = "\n".join(f"- {title}: {', '.join(labels)}" for title, labels in tracker.summary(key))
        selections = tracker.selections(key)
        tracker.discard(key)

        await self._post(thread_id, f"Sending answers...\n{summary}")
        await self._adapter.send_typing_indicator(thread_id)

        try:
            result = await self._orchestrator.submit_answer(key, selections)
        except AgentTimeout as e:
            await self._post_timeout(thread_id, e)
            return
        except BridgeError as e:
            logger.error("bridge_error", thread_id=key, error=str(e), kind=type(e).__name__)
            return

        await self._deliver(thread_id, result)

    async def _deliver(self, thread_id: str, result: WaitResult) -> None:
        if isinstance(result, FinalResult):
            for chunk in _split_message(result.text, max_length=4000):
                await self._adapter.send_message(OutgoingMessage(thread_id=thread_id, text=chunk))
        elif isinstance(result, QuestionResult) and result.free_text:
            await self._post(thread_id, _free_text_prompt(result))
        elif isinstance(result, QuestionResult):
            await self._adapter.send_question(thread_id, result.questions)

    async def _post(self, thread_id: str, text: str) -> None:
        await self._adapter.send_message(OutgoingMessage(thread_id=thread_id, text=text))

    async def _post_timeout(self, thread_id: str, error: AgentTimeout) -> None:
        logger.warning("agent_still_working", thread_id=error.thread_id, timeout=error.timeout)
        await self._post(
            thread_id,
            f"The agent is still working (no answer after {error.timeout:g}s). "
            "Reply in this thread to follow up.",
        )


def _free_text_prompt(result: QuestionResult) -> str:
    lines = [f"{q.title}: {q.prompt}" for q in result.questions]
    lines.append("Reply in this thread to answer.")
    if len(lines) == 1:
        lines.insert(0, "The agent is waiting for your input.")
    return "\n".join(lines)


def _split_message(text: str, max_length: int = 4000) -> list[str]:
    """Split a message into chunks that fit within platform limits."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break
        # Prefer splitting at a newline
        split_pos = text.rfind("\n", 0, max_length)
        if split_pos == -1:
            split_pos = max_length
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks

"""Abstract messenger adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Awaitable, Callable

from agent_bridge.core.questions import Question
from agent_bridge.messenger.models import ButtonClick, ConfirmClick, IncomingMessage, OutgoingMessage

MAX_SEEN_EVENTS = 1000
CONFIRM_LABEL = "Done"


class MessengerAdapter(ABC):
    """Base class for all messenger platform adapters.

    To add a new messenger, subclass this and implement all abstract methods.
    Adapters drop duplicate deliveries of the same inbound event.
    """

    def __init__(self, bot_id: str, config: dict):
        self.bot_id = bot_id
        self.config = config
        self._message_callback: Callable[[IncomingMessage], Awaitable[None]] | None = None
        self._button_callback: Callable[[ButtonClick], Awaitable[None]] | None = None
        self._confirm_callback: Callable[[ConfirmClick], Awaitable[None]] | None = None
        self._seen_events: OrderedDict[str, None] = OrderedDict()
        self._allowed_chats = {str(c) for c in config.get("allowed_chat_ids") or []}

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        """Send a text message into a thread."""
        ...

    @abstractmethod
    async def send_question(self, thread_id: str, questions: list[Question]) -> None:
        """Render questions with one button per option, plus a Done button for multi-select."""
        ...

    @abstractmethod
    async def send_typing_indicator(self, thread_id: str) -> None:
        """Show typing/processing indicator."""
        ...

    def on_message(self, callback: Callable[[IncomingMessage], Awaitable[None]]) -> None:
        """Register the callback invoked for every incoming message."""
        self._message_callback = callback

    def on_button(self, callback: Callable[[ButtonClick], Awaitable[None]]) -> None:
        self._button_callback = callback

    def on_confirm(self, callback: Callable[[ConfirmClick], Awaitable[None]]) -> None:
        self._confirm_callback = callback

    def is_allowed_chat(self, chat_id: str) -> bool:
        return not self._allowed_chats or chat_id in self._allowed_chats

    def mark_seen(self, event_key: str) -> bool:
        """Record an inbound event. Returns False if it was already seen."""
        if event_key in self._seen_events:
            return False
        self._seen_events[event_key] = None
        if len(self._seen_events) > MAX_SEEN_EVENTS:
            self._seen_events.popitem(last=False)
        return True

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return platform identifier string."""
        ...


def question_heading(question: Question) -> str:
    suffix = " (select all that apply)" if question.multi_select else ""
    return f"{question.title}{suffix}\n{question.prompt}"


def option_descriptions(question: Question) -> str:
    return "\n".join(
        f"{i + 1}. {opt.label}: {opt.description}"
        for i, opt in enumerate(question.options)
        if opt.description
    )

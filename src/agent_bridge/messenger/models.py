"""Unified message models for all messenger platforms."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from agent_bridge.core.types import Platform


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    platform: Platform
    bot_id: str
    chat_id: str
    thread_id: str  # root of the conversation thread, stable across replies
    user_id: str
    user_display_name: str
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class ButtonClick:
    """An option button pressed under a rendered question."""

    bot_id: str
    thread_id: str
    question_index: int
    option_index: int
    label: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ConfirmClick:
    """The "Done" button of a multi-select question."""

    bot_id: str
    thread_id: str
    question_index: int


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    thread_id: str
    text: str

"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    TELEGRAM = "telegram"
    DISCORD = "discord"


class ThreadState(StrEnum):
    """Where a thread is in its request/response cycle."""

    IDLE = "idle"
    STARTING = "starting"
    RESUMING = "resuming"
    WAITING = "waiting"
    BLOCKED = "blocked"
    ANSWERING_SUBMITTED = "answering_submitted"


class TurnState(StrEnum):
    """Classification of the agent's newest turn."""

    PENDING = "pending"
    BLOCKED_ON_QUESTION = "blocked_on_question"
    FINAL = "final"

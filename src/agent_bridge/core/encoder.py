"""Turns clarification answers into the keystrokes the agent's prompt expects.

The agent's question prompt is a vertical list navigated strictly forward:
the cursor starts on option 0, ``DOWN`` moves one slot, ``TOGGLE`` flips the
option under the cursor without moving, and ``CONFIRM`` accepts. Multi-select
questions place the free-text "Other" slot at ``option_count`` and the
"Next" control at ``option_count + 1``. A final review screen needs one more
``CONFIRM`` to submit everything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Action(StrEnum):
    DOWN = "down"
    TOGGLE = "toggle"
    CONFIRM = "confirm"


@dataclass(frozen=True, slots=True)
class QuestionSelection:
    question_index: int
    selected_indices: list[int] = field(default_factory=list)
    is_multi_select: bool = False
    option_count: int = 0


def _check_indices(selection: QuestionSelection) -> None:
    if selection.option_count <= 0:
        return
    for index in selection.selected_indices:
        if not 0 <= index < selection.option_count:
            raise ValueError(
                f"Option index {index} out of range for question {selection.question_index} "
                f"({selection.option_count} options)"
            )


def _encode_single(selection: QuestionSelection) -> list[Action]:
    target = selection.selected_indices[0] if selection.selected_indices else 0
    return [Action.DOWN] * target + [Action.CONFIRM]


def _encode_multi(selection: QuestionSelection) -> list[Action]:
    actions: list[Action] = []
    cursor = 0
    for target in sorted(set(selection.selected_indices)):
        actions.extend([Action.DOWN] * (target - cursor))
        actions.append(Action.TOGGLE)
        cursor = target
    next_slot = selection.option_count + 1
    actions.extend([Action.DOWN] * (next_slot - cursor))
    actions.append(Action.CONFIRM)
    return actions


def encode(selections: list[QuestionSelection]) -> list[Action]:
    """Encode every question's answer, then submit."""
    actions: list[Action] = []
    for selection in sorted(selections, key=lambda s: s.question_index):
        _check_indices(selection)
        if selection.is_multi_select:
            actions.extend(_encode_multi(selection))
        else:
            actions.extend(_encode_single(selection))
    actions.append(Action.CONFIRM)
    return actions

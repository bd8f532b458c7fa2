"""Clarification questions raised by the agent's AskUserQuestion tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class QuestionOption:
    label: str
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Question:
    prompt: str
    header: Optional[str] = None
    options: list[QuestionOption] = field(default_factory=list)
    multi_select: bool = False

    @property
    def title(self) -> str:
        return self.header or "Question"


def parse_questions(tool_input: Any) -> list[Question]:
    """Build questions from the tool input ``{"questions": [...]}``.

    Items that are not objects or have no question text are skipped, as are
    options without a label.
    """
    if not isinstance(tool_input, dict):
        return []
    raw_items = tool_input.get("questions")
    if not isinstance(raw_items, list):
        return []

    questions: list[Question] = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        prompt = item.get("question")
        if not isinstance(prompt, str) or not prompt:
            continue

        options: list[QuestionOption] = []
        for raw_opt in item.get("options") or []:
            if not isinstance(raw_opt, dict):
                continue
            label = raw_opt.get("label")
            if not isinstance(label, str) or not label:
                continue
            description = raw_opt.get("description")
            options.append(
                QuestionOption(
                    label=label,
                    description=description if isinstance(description, str) and description else None,
                )
            )

        header = item.get("header")
        questions.append(
            Question(
                prompt=prompt,
                header=header if isinstance(header, str) and header else None,
                options=options,
                multi_select=item.get("multiSelect") is True,
            )
        )
    return questions


def needs_free_text(questions: list[Question]) -> bool:
    """True when the questions cannot be answered with option buttons alone."""
    return not questions or any(not q.options for q in questions)

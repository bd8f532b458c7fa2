import pytest
from conftest import FakeAdapter

from agent_bridge.core.bot_registry import BotRegistry
from agent_bridge.core.questions import Question, QuestionOption
from agent_bridge.messenger.base import MAX_SEEN_EVENTS, option_descriptions, question_heading
from agent_bridge.messenger.telegram import build_question_keyboard, split_thread_id


def _question(multi: bool = False) -> Question:
    return Question(
        prompt="Which tone?",
        header="Tone",
        options=[QuestionOption("Formal", "Polite and complete"), QuestionOption("Casual")],
        multi_select=multi,
    )


def test_duplicate_events_dropped():
    adapter = FakeAdapter()
    assert adapter.mark_seen("update:1") is True
    assert adapter.mark_seen("update:1") is False


def test_seen_events_are_bounded():
    adapter = FakeAdapter()
    for i in range(MAX_SEEN_EVENTS + 1):
        adapter.mark_seen(f"update:{i}")
    # The oldest key was forgotten
    assert adapter.mark_seen("update:0") is True


def test_allowed_chats():
    assert FakeAdapter().is_allowed_chat("anything")
    adapter = FakeAdapter(config={"allowed_chat_ids": [100]})
    assert adapter.is_allowed_chat("100")
    assert not adapter.is_allowed_chat("200")


def test_question_rendering_helpers():
    assert question_heading(_question()) == "Tone\nWhich tone?"
    assert question_heading(_question(multi=True)).startswith("Tone (select all that apply)")
    assert option_descriptions(_question()) == "1. Formal: Polite and complete"


def test_telegram_keyboard_layout():
    single = build_question_keyboard(2, _question())
    assert [row[0].callback_data for row in single.inline_keyboard] == ["q:2:0", "q:2:1"]

    multi = build_question_keyboard(0, _question(multi=True))
    assert multi.inline_keyboard[-1][0].text == "Done"
    assert multi.inline_keyboard[-1][0].callback_data == "c:0"


def test_split_thread_id_handles_negative_chat_ids():
    assert split_thread_id("-100123:55") == (-100123, 55)


def test_registry_rejects_duplicate_bot_ids():
    registry = BotRegistry()
    registry.register("a", FakeAdapter("a"))
    with pytest.raises(ValueError):
        registry.register("a", FakeAdapter("a"))
    assert registry.ids() == ["a"]

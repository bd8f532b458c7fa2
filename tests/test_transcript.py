import json

from conftest import agent_text, agent_tool, ask_question, question_item, tool_result, user_prompt

from agent_bridge.core.transcript import (
    ClaudeTranscriptSource,
    MemoryTranscriptSource,
    TranscriptReader,
    parse_entries,
    sanitize_project_path,
)
from agent_bridge.core.types import TurnState

SESSION = "6f1c2d3e-0000-4000-8000-000000000001"


def _reader(*records) -> TranscriptReader:
    source = MemoryTranscriptSource()
    source.append(SESSION, *records)
    return TranscriptReader(source)


def test_final_text_after_prompt():
    result = _reader(user_prompt("Draft a reply"), agent_text("Draft reply: hello")).classify(SESSION)
    assert result.state is TurnState.FINAL
    assert result.text == "Draft reply: hello"
    assert result.cursor == 2


def test_missing_transcript_is_pending():
    result = TranscriptReader(MemoryTranscriptSource()).classify(SESSION)
    assert result.state is TurnState.PENDING
    assert result.cursor == 0


def test_prompt_without_answer_is_pending():
    result = _reader(user_prompt("one"), agent_text("first"), user_prompt("two")).classify(SESSION)
    assert result.state is TurnState.PENDING


def test_unresolved_tool_call_is_pending():
    reader = _reader(user_prompt("go"), agent_tool("Bash", "tool-1", {"command": "ls"}))
    assert reader.classify(SESSION).state is TurnState.PENDING


def test_resolved_tool_without_text_is_pending():
    reader = _reader(user_prompt("go"), agent_tool("Bash", "tool-1"), tool_result("tool-1"))
    assert reader.classify(SESSION).state is TurnState.PENDING


def test_open_clarification_blocks():
    reader = _reader(
        user_prompt("Draft a reply"),
        ask_question(
            "ask-1",
            question_item("Which tone?", ["Formal", "Casual"], header="Tone"),
            question_item("Add?", ["Greeting", "Sign-off", "Emoji"], multi=True),
        ),
    )
    result = reader.classify(SESSION)
    assert result.state is TurnState.BLOCKED_ON_QUESTION
    assert result.invocation_id == "ask-1"
    assert [q.title for q in result.questions] == ["Tone", "Question"]
    assert [o.label for o in result.questions[0].options] == ["Formal", "Casual"]
    assert result.questions[1].multi_select is True


def test_answered_clarification_is_not_blocked():
    reader = _reader(
        user_prompt("Draft"),
        ask_question("ask-1", question_item("Tone?", ["A", "B"])),
        tool_result("ask-1"),
    )
    assert reader.classify(SESSION).state is TurnState.PENDING

    reader = _reader(
        user_prompt("Draft"),
        ask_question("ask-1", question_item("Tone?", ["A", "B"])),
        tool_result("ask-1"),
        agent_text("Done: formal reply"),
    )
    result = reader.classify(SESSION)
    assert result.state is TurnState.FINAL
    assert result.text == "Done: formal reply"


def test_malformed_lines_are_skipped():
    reader = _reader(
        user_prompt("hi"),
        "{not json",
        '"a string"',
        json.dumps({"type": "assistant"}),
        agent_text("answer"),
    )
    result = reader.classify(SESSION)
    assert result.state is TurnState.FINAL
    assert result.text == "answer"


def test_non_conversation_lines_ignored():
    reader = _reader(
        user_prompt("hi"),
        agent_text("answer"),
        {"type": "summary", "summary": "chat"},
        {"type": "assistant", "isSidechain": True, "message": {"content": [{"type": "tool_use", "id": "x", "name": "Bash"}]}},
    )
    assert reader.classify(SESSION).state is TurnState.FINAL


def test_floor_hides_earlier_answers():
    source = MemoryTranscriptSource()
    source.append(SESSION, user_prompt("first"), agent_text("old answer"))
    reader = TranscriptReader(source)
    floor = reader.line_count(SESSION)

    assert reader.classify(SESSION, floor=floor).state is TurnState.PENDING

    source.append(SESSION, user_prompt("second"), agent_text("new answer"))
    result = reader.classify(SESSION, floor=floor)
    assert result.state is TurnState.FINAL
    assert result.text == "new answer"


def test_unchanged_cursor_skips_rescan():
    reader = _reader(user_prompt("hi"), agent_text("answer"))
    first = reader.classify(SESSION)
    second = reader.classify(SESSION, cursor=first.cursor)
    assert second.state is TurnState.PENDING
    assert second.cursor == first.cursor


def test_streamed_message_parts_merge():
    entries = parse_entries([
        json.dumps(user_prompt("hi")),
        json.dumps(agent_text("Let me check.", message_id="msg_1")),
        json.dumps(agent_tool("Read", "tool-9", message_id="msg_1")),
    ])
    assert len(entries) == 2
    assert entries[1].text == "Let me check."
    assert [b.invocation_id for b in entries[1].tool_invocations] == ["tool-9"]


def test_text_and_pending_tool_in_same_message_is_pending():
    reader = _reader(
        user_prompt("hi"),
        agent_text("Let me check.", message_id="msg_1"),
        agent_tool("Read", "tool-9", message_id="msg_1"),
    )
    assert reader.classify(SESSION).state is TurnState.PENDING


def test_sanitize_project_path():
    assert sanitize_project_path("/Users/me/my_project.v2") == "-Users-me-my-project-v2"


def test_claude_source_reads_transcript_and_drops_partial_line(tmp_path):
    working_dir = tmp_path / "work"
    working_dir.mkdir()
    projects = tmp_path / "projects"
    session_dir = projects / sanitize_project_path(str(working_dir.resolve()))
    session_dir.mkdir(parents=True)
    path = session_dir / f"{SESSION}.jsonl"
    path.write_text(
        json.dumps(user_prompt("hi")) + "\n" + json.dumps(agent_text("answer")) + "\n" + '{"type": "assis',
        encoding="utf-8",
    )

    source = ClaudeTranscriptSource(projects, working_dir)
    assert source.path_for(SESSION) == path
    assert source.line_count(SESSION) == 2

    result = TranscriptReader(source).classify(SESSION)
    assert result.state is TurnState.FINAL
    assert result.text == "answer"


def test_claude_source_finds_transcript_in_other_project(tmp_path):
    projects = tmp_path / "projects"
    other = projects / "-somewhere-else"
    other.mkdir(parents=True)
    (other / f"{SESSION}.jsonl").write_text(json.dumps(agent_text("x")) + "\n", encoding="utf-8")

    source = ClaudeTranscriptSource(projects, tmp_path)
    assert source.line_count(SESSION) == 1
    assert source.line_count("unknown-session") == 0

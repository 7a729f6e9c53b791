"""Tests for the parser module."""

import logging
from datetime import datetime, timezone

from cc_historian.parser import (
    clean_tool_name,
    derive_role,
    extract_action_items,
    extract_code_snippets,
    extract_insights,
    extract_text,
    parse_record,
    parse_session_file,
    parse_timestamp,
)


def test_parse_timestamp():
    assert parse_timestamp("2024-01-15T10:00:00Z") == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-15T10:00:00").tzinfo is not None
    assert parse_timestamp("2020-12-31T23:59:59Z") is None
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp(12345) is None


def test_clean_tool_name():
    assert clean_tool_name("Read") == "Read"
    assert clean_tool_name("mcp__github__create_issue") == "createissue"


def test_extract_text_flattens_blocks():
    message = {
        "content": [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "name": "Read", "input": {}},
            {"type": "tool_result", "content": [{"type": "text", "text": "file body"}]},
            {"type": "tool_result", "content": ""},
            "stray string",
        ]
    }
    assert extract_text(message) == "Let me check. [Tool: Read] [Tool Result] file body [Tool Result]"
    assert extract_text({"content": "plain"}) == "plain"
    assert extract_text({}) == ""


def test_extract_text_caps_tool_results():
    message = {"content": [{"type": "tool_result", "content": "x" * 5000}]}
    assert extract_text(message) == "[Tool Result] " + "x" * 1000


def test_derive_role():
    assert derive_role({"type": "user", "message": {"content": "hi"}}) == "user"
    assert derive_role({"type": "user", "message": {"content": [{"type": "tool_result"}]}}) == "tool_result"
    assert derive_role({"type": "assistant", "message": {"content": [{"type": "tool_use"}]}}) == "tool_use"
    assert (
        derive_role({"type": "assistant", "message": {"content": [{"type": "text"}, {"type": "tool_use"}]}})
        == "assistant"
    )


def test_parse_record_extracts_context(temp_dir, make_record):
    record = make_record(
        "assistant",
        "Updating the handler now.",
        uuid="u1",
        session_id="sess",
        tools=[
            ("Edit", {"file_path": "/Users/dev/Code/webapp/src/auth.py"}),
            ("Bash", {"command": "pytest tests/unit -q"}),
        ],
    )
    message = parse_record(record, temp_dir / "sess.jsonl", 1, "-Users-dev-Code-webapp")

    assert message.id == "u1"
    assert message.role == "assistant"
    assert message.project_path == "/Users/dev/Code/webapp"
    assert message.tools == ["Edit", "Bash"]
    assert "/Users/dev/Code/webapp/src/auth.py" in message.files
    assert message.context.bash_commands == ["pytest tests/unit -q"]


def test_parse_record_fallback_ids(temp_dir):
    record = {"type": "user", "message": {"content": "hello there"}}
    message = parse_record(record, temp_dir / "abc.jsonl", 7, "-p")
    assert message.id == "abc-7"
    assert message.session_id == "abc"
    assert message.timestamp is None


def test_parse_record_skips_empty_content(temp_dir):
    assert parse_record({"type": "user", "message": {"content": []}}, temp_dir / "a.jsonl", 1, "-p") is None


def test_parse_session_file(sample_session_jsonl):
    messages = parse_session_file(sample_session_jsonl, "-Users-dev-Code-webapp")

    assert [m.id for m in messages] == ["msg-001", "msg-002", "msg-003", "msg-004"]
    assert [m.role for m in messages] == ["user", "assistant", "tool_use", "tool_result"]
    assert messages[2].tools == ["Edit"]
    assert all(m.session_id == "test-session-123" for m in messages)


def test_parse_session_file_skips_malformed_lines(temp_dir, caplog):
    path = temp_dir / "broken.jsonl"
    path.write_text(
        '{"type": "user", "message": {"content": "first valid line"}}\n'
        "{not json\n"
        "[1, 2, 3]\n"
        "\n"
        '{"type": "assistant", "message": {"content": "second valid line"}}\n'
    )

    with caplog.at_level(logging.WARNING, logger="cc_historian.parser"):
        messages = parse_session_file(path, "-p")

    assert [m.content for m in messages] == ["first valid line", "second valid line"]
    assert "malformed line 2" in caplog.text
    assert "non-object line 3" in caplog.text


def test_parse_session_file_skips_wrongly_shaped_records(temp_dir, caplog):
    path = temp_dir / "shapes.jsonl"
    path.write_text(
        '{"type": "user", "message": {"content": "first valid line"}}\n'
        '{"type": "user", "message": "plain string"}\n'
        '{"type": "assistant", "message": {"content": [{"type": "text", "text": 5}]}}\n'
        '{"type": "assistant", "message": {"content": [{"type": "tool_use", "name": 7, "input": {}}]}}\n'
        '{"type": "assistant", "message": {"content": "second valid line"}}\n'
    )

    with caplog.at_level(logging.WARNING, logger="cc_historian.parser"):
        messages = parse_session_file(path, "-p")

    assert [m.content for m in messages] == ["first valid line", "second valid line"]
    assert "malformed line 2" in caplog.text
    assert "malformed line 4" in caplog.text


def test_extract_text_ignores_non_string_text():
    message = {
        "content": [
            {"type": "text", "text": 5},
            {"type": "text", "text": "kept"},
            {"type": "tool_result", "content": [{"type": "text", "text": None}, {"type": "text", "text": "out"}]},
        ]
    }
    assert extract_text(message) == "kept [Tool Result] out"


def test_parse_session_file_missing_file(temp_dir, caplog):
    with caplog.at_level(logging.ERROR, logger="cc_historian.parser"):
        assert parse_session_file(temp_dir / "missing.jsonl") == []
    assert "Error reading" in caplog.text


def test_extract_insights_and_snippets():
    text = (
        "The issue is that the token cache never expires entries.\n"
        "```python\ncache.clear(expired_only=True)\n```\n"
        "Use `refresh_token(user_id)` afterwards."
    )
    insights = extract_insights(text)
    assert insights[0] == "Solution: that the token cache never expires entries"

    snippets = extract_code_snippets(text)
    assert snippets == ["cache.clear(expired_only=True)", "refresh_token(user_id)"]


def test_extract_action_items():
    actions = extract_action_items("Next step: rebuild the docker image and redeploy")
    assert actions[0] == "rebuild the docker image and redeploy"

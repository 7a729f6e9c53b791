"""Pytest fixtures for cc-historian tests."""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from cc_historian import corpus
from cc_historian.cache import ValueBiasedCache
from cc_historian.engine import HistorySearchEngine


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def now():
    return datetime.now(tz=timezone.utc)


@pytest.fixture
def claude_dir(temp_dir, monkeypatch):
    """An empty ~/.claude tree that corpus discovery points at."""
    (temp_dir / "projects").mkdir()
    (temp_dir / "plans").mkdir()
    monkeypatch.setattr(corpus, "PROJECTS_DIR", temp_dir / "projects")
    monkeypatch.setattr(corpus, "PLANS_DIR", temp_dir / "plans")
    return temp_dir


def build_record(
    role: str,
    text: str = "",
    timestamp: datetime | None = None,
    uuid: str | None = None,
    session_id: str | None = None,
    tools: list[tuple[str, dict]] | None = None,
    cwd: str | None = None,
) -> dict:
    """A raw session-file record with text and tool_use content blocks."""
    blocks: list[dict] = []
    if text:
        blocks.append({"type": "text", "text": text})
    for i, (name, tool_input) in enumerate(tools or []):
        blocks.append({"type": "tool_use", "id": f"toolu_{i}", "name": name, "input": tool_input})

    record: dict = {"type": role, "message": {"role": role, "content": blocks}}
    if timestamp is not None:
        record["timestamp"] = timestamp.isoformat()
    if uuid:
        record["uuid"] = uuid
    if session_id:
        record["sessionId"] = session_id
    if cwd:
        record["cwd"] = cwd
    return record


@pytest.fixture
def make_record():
    return build_record


def write_jsonl(path: Path, records: list, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for record in records:
            f.write(record if isinstance(record, str) else json.dumps(record))
            f.write("\n")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def write_session(claude_dir):
    """Write a session file: write_session(project_dir, session_id, records)."""

    def _write(project_dir: str, session_id: str, records: list, mtime: float | None = None) -> Path:
        path = claude_dir / "projects" / project_dir / f"{session_id}.jsonl"
        return write_jsonl(path, records, mtime)

    return _write


@pytest.fixture
def write_plan(claude_dir):
    def _write(name: str, text: str) -> Path:
        path = claude_dir / "plans" / f"{name}.md"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def engine():
    """Engine with a private cache and no Claude Desktop scan."""
    return HistorySearchEngine(cache=ValueBiasedCache(), include_desktop=False)


@pytest.fixture
def sample_session_jsonl(temp_dir):
    """A small JSONL session with text, tool use and a tool result."""
    base = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    records = [
        build_record(
            "user",
            "How do I implement authentication?",
            base,
            uuid="msg-001",
            session_id="test-session-123",
        ),
        build_record(
            "assistant",
            "For authentication, you can use JWT tokens stored in an httpOnly cookie.",
            base + timedelta(seconds=5),
            uuid="msg-002",
            session_id="test-session-123",
        ),
        build_record(
            "assistant",
            "",
            base + timedelta(seconds=10),
            uuid="msg-003",
            session_id="test-session-123",
            tools=[("Edit", {"file_path": "/Users/dev/Code/webapp/src/auth.py"})],
        ),
        {
            "type": "user",
            "uuid": "msg-004",
            "sessionId": "test-session-123",
            "timestamp": (base + timedelta(seconds=12)).isoformat(),
            "message": {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "toolu_0", "content": "File updated successfully"}
                ],
            },
        },
    ]
    return write_jsonl(temp_dir / "test-session.jsonl", records)

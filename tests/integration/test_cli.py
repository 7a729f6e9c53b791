"""Integration tests for the CLI."""

import json
import os
import subprocess
import sys
from datetime import datetime, timedelta, timezone

import pytest

SRC_DIR = os.path.join(os.path.dirname(__file__), os.pardir, os.pardir, "src")


@pytest.fixture
def claude_home(temp_dir, make_record):
    """A ~/.claude tree with one session and one plan."""
    now = datetime.now(tz=timezone.utc)
    records = [
        make_record("user", "Why does the docker auth step fail in CI?", now - timedelta(minutes=5), uuid="q1"),
        make_record(
            "assistant",
            "We fixed the Docker auth issue using the Read tool on the CI config.",
            now,
            uuid="a1",
            tools=[("Read", {"file_path": ".github/workflows/ci.yml"})],
        ),
    ]
    session = temp_dir / "projects" / "-Users-dev-Code-webapp" / "cli-session-1.jsonl"
    session.parent.mkdir(parents=True)
    session.write_text("".join(json.dumps(r) + "\n" for r in records))

    plans = temp_dir / "plans"
    plans.mkdir()
    (plans / "docker-auth.md").write_text("# Docker auth plan\n\n## Registry tokens\nRotate them.\n")
    return temp_dir


def run_cli(*args, home=None):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (SRC_DIR, env.get("PYTHONPATH")) if p)
    env["CC_HISTORIAN_DESKTOP_DIR"] = os.path.join(os.sep, "nonexistent", "claude-desktop")
    if home is not None:
        env["CLAUDE_CONFIG_DIR"] = str(home)
    return subprocess.run(
        [sys.executable, "-m", "cc_historian.cli", *args],
        capture_output=True,
        text=True,
        env=env,
    )


def test_cli_help():
    """Test that --help lists every command."""
    result = run_cli("--help")
    assert result.returncode == 0
    for command in ("search", "similar", "file", "errors", "tools", "sessions", "summary", "plans"):
        assert command in result.stdout


def test_cli_version():
    """Test that --version works."""
    result = run_cli("--version")
    assert result.returncode == 0
    assert "cc-historian" in result.stdout


def test_search_requires_query(claude_home):
    result = run_cli("search", "  ", home=claude_home)
    assert result.returncode == 1
    assert "Query required" in result.stdout


def test_search_rejects_unknown_timeframe(claude_home):
    result = run_cli("search", "docker auth", "--timeframe", "fortnight", home=claude_home)
    assert result.returncode == 1
    assert "Unknown timeframe" in result.stdout


def test_search_json_output(claude_home):
    """Test that search with --json outputs valid JSON."""
    result = run_cli("search", "docker auth", "--json", home=claude_home)
    assert result.returncode == 0

    data = json.loads(result.stdout)
    assert set(data) >= {"results", "query", "total_results", "search_time_ms"}
    assert data["query"] == "docker auth"
    assert [r["id"] for r in data["results"]] == ["a1"]


def test_search_without_history(temp_dir):
    result = run_cli("search", "docker auth", "--json", home=temp_dir)
    assert result.returncode == 0
    assert json.loads(result.stdout)["results"] == []


def test_sessions_json_output(claude_home):
    result = run_cli("sessions", "--json", home=claude_home)
    assert result.returncode == 0

    sessions = json.loads(result.stdout)["sessions"]
    assert [s["session_id"] for s in sessions] == ["cli-session-1"]
    assert sessions[0]["duration_minutes"] == 5


def test_summary_latest_json_output(claude_home):
    result = run_cli("summary", "--json", home=claude_home)
    assert result.returncode == 0

    data = json.loads(result.stdout)
    assert data["found"] is True
    assert data["session_id"] == "cli-session-1"
    assert data["project_path"] == "/Users/dev/Code/webapp"


def test_summary_unknown_session(claude_home):
    result = run_cli("summary", "no-such-session", home=claude_home)
    assert result.returncode == 0
    assert "not found" in result.stdout


def test_plans_json_output(claude_home):
    result = run_cli("plans", "docker auth", "--json", home=claude_home)
    assert result.returncode == 0

    data = json.loads(result.stdout)
    assert [p["name"] for p in data["plans"]] == ["docker-auth"]
    assert data["plans"][0]["title"] == "Docker auth plan"

"""Tests for the scoring module."""

from datetime import datetime, timedelta, timezone

from cc_historian.models import Message, MessageContext
from cc_historian.scoring import (
    CLAUDE_RELEVANCE_CAP,
    calculate_claude_relevance,
    calculate_plan_relevance,
    calculate_relevance_score,
)


def make_message(content, role="assistant", **kwargs):
    return Message(
        id="m1",
        timestamp=kwargs.pop("timestamp", None),
        role=role,
        content=content,
        session_id="s1",
        project_path=kwargs.pop("project_path", "/Users/dev/Code/webapp"),
        **kwargs,
    )


def test_docker_auth_score():
    """Strict term, residual word, exact phrase and coverage all count."""
    message = make_message(
        "We fixed the Docker auth issue using the Read tool",
        context=MessageContext(tools_used=["Read"]),
    )
    # docker 10 + auth 2 + phrase 5 + coverage 4
    assert calculate_relevance_score(message, "docker auth") == 21


def test_strict_term_veto():
    """A named technology missing from content zeroes the score."""
    message = make_message("ReAct agent pattern implementation with hooks and optimization")
    assert calculate_relevance_score(message, "react hooks optimization") == 0


def test_strict_term_veto_ignores_other_overlap():
    message = make_message("docker auth docker auth in src/app.py", role="tool_result")
    assert calculate_relevance_score(message, "kubernetes docker auth") > 0
    assert calculate_relevance_score(message, "kubernetes auth") == 0


def test_supporting_terms_score():
    message = make_message("Memoizing the hooks fixed rerenders")
    # hooks and rerenders are supporting; supporting hits do not count toward coverage
    assert calculate_relevance_score(message, "hooks rerenders slow") == 3 + 3


def test_tool_file_and_project_bonuses():
    message = make_message("opened src/app.ts", role="tool_result", cwd="/Users/dev/Code/webapp")
    base = calculate_relevance_score(message, "unrelated words here")
    assert base == 5 + 3
    assert calculate_relevance_score(message, "unrelated words here", project_filter="webapp") == base + 5


def test_claude_relevance_is_capped():
    message = make_message(
        "The solution: fixed the error in the function export",
        relevance_score=50.0,
        context=MessageContext(tools_used=["Edit"], files_referenced=["a.py"], error_patterns=["error"]),
    )
    assert calculate_claude_relevance(message, "error") == CLAUDE_RELEVANCE_CAP


def test_claude_relevance_prefers_recent():
    now = datetime(2025, 6, 1, tzinfo=timezone.utc)
    fresh = make_message("plain words", relevance_score=1.0, timestamp=now - timedelta(hours=2))
    stale = make_message("plain words", relevance_score=1.0, timestamp=now - timedelta(days=90))
    assert calculate_claude_relevance(fresh, "nothing", now=now) == 1.5
    assert calculate_claude_relevance(stale, "nothing", now=now) == 1.0


def test_claude_relevance_zero_stays_zero():
    message = make_message("error in code", relevance_score=0.0)
    assert calculate_claude_relevance(message, "error") == 0


def test_plan_relevance_weights():
    title_hit = calculate_plan_relevance("auth refactor", "Auth Refactor Plan", [], "")
    section_hit = calculate_plan_relevance("auth refactor", "Other", ["Auth refactor steps"], "")
    body_hit = calculate_plan_relevance("auth refactor", "Other", [], "the auth refactor")

    # 20 for the phrase + 5 per term
    assert title_hit == 30
    # 10 for the phrase + 3 per term
    assert section_hit == 16
    # 8 for the phrase + 1 per occurrence per term
    assert body_hit == 10
    assert calculate_plan_relevance("auth", None, [], "nothing relevant") == 0

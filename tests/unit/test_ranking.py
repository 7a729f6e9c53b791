"""Tests for the ranking module."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from cc_historian.intent import analyze_query
from cc_historian.models import Message, MessageContext
from cc_historian.ranking import (
    apply_coverage_boost,
    apply_multiword_veto,
    apply_urgency_boost,
    deduplicate,
    deduplicate_by_content,
    final_score,
    is_highly_relevant,
    is_low_value,
    is_noise,
    passes_quality_gate,
    prioritize_results,
    ranking_signature,
    select_top_results,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_message(content, id="m1", role="assistant", score=0.0, final=None, timestamp=None, context=None):
    return Message(
        id=id,
        timestamp=timestamp,
        role=role,
        content=content,
        session_id="s1",
        project_path="/p",
        relevance_score=score,
        final_score=final,
        context=context,
    )


@pytest.mark.parametrize(
    "boosts",
    [
        {},
        {"optimization": 2.0},
        {"error_resolution": 3.0, "solutions": 2.8, "tool_usage": 2.2},
    ],
)
@pytest.mark.parametrize("urgency", ["high", "medium"])
def test_multiword_veto_persists_through_reranking(boosts, urgency):
    """A vetoed record stays at 0 whatever boosts apply."""
    analysis = replace(analyze_query("react hooks optimization"), semantic_boosts=boosts, urgency=urgency)
    message = make_message(
        "react hooks optimization error fix solution",
        timestamp=NOW - timedelta(minutes=5),
        context=MessageContext(tools_used=["Edit"], error_patterns=["error"]),
    )
    assert final_score(message, "react hooks optimization", analysis, NOW) == 0


def test_apply_multiword_veto():
    assert apply_multiword_veto(0, ["docker"]) is None
    assert apply_multiword_veto(0, ["docker", "auth"]) == 0
    assert apply_multiword_veto(3, ["docker", "auth"]) is None


def test_apply_coverage_boost():
    assert apply_coverage_boost(2.0, "docker auth guide", ["docker", "auth"]) == 8.0
    assert apply_coverage_boost(2.0, "docker only", ["docker", "auth", "kubernetes"]) == pytest.approx(1.0)
    assert apply_coverage_boost(2.0, "nothing", ["docker"]) == pytest.approx(0.2)


def test_apply_urgency_boost():
    recent = make_message("x", timestamp=NOW - timedelta(hours=1))
    old = make_message("x", timestamp=NOW - timedelta(days=3))
    assert apply_urgency_boost(2.0, recent, "high", NOW) == 3.0
    assert apply_urgency_boost(2.0, old, "high", NOW) == 2.0
    assert apply_urgency_boost(2.0, make_message("x"), "high", NOW) == 2.0
    assert apply_urgency_boost(2.0, recent, "medium", NOW) == 2.0


def test_ranking_signature():
    message = make_message(
        "Hello 123 'x'",
        context=MessageContext(tools_used=["Read", "Bash"], files_referenced=["a.py"]),
    )
    assert ranking_signature(message) == "assistant:Bash|Read:files:hello N x"


def test_near_identical_records_deduplicated():
    """Records differing only in a trailing number collapse to one."""
    first = make_message("Deployment finished at 1718000001 with all checks green", id="a")
    second = make_message("Deployment finished at 1718000002 with all checks green", id="b")
    assert len(deduplicate([first, second])) == 1


def test_deduplicate_is_idempotent():
    messages = [
        make_message("Deployment finished at 1718000001 with all checks green", id="a", final=2.0),
        make_message("A completely different answer about caching layers", id="b", final=5.0),
        make_message("Deployment finished at 1718000002 with all checks green", id="c", final=3.0),
    ]
    once = deduplicate(messages)
    assert deduplicate(once) == once


def test_deduplicate_replaces_only_on_higher_score():
    a = make_message("same words here", id="a", final=1.0)
    b = make_message("other words entirely", id="b", final=5.0)
    a_better = make_message("same words here", id="a2", final=3.0)
    a_tie = make_message("same words here", id="a3", final=3.0)

    result = deduplicate([a, b, a_better, a_tie])
    assert [m.id for m in result] == ["a2", "b"]


def test_deduplicate_by_content_prefers_relevance():
    low = make_message("same content", id="low", score=1.0)
    high = make_message("same content", id="high", score=4.0)
    assert [m.id for m in deduplicate_by_content([low, high])] == ["high"]


def test_select_top_results():
    analysis = analyze_query("docker auth")
    hit = make_message(
        "We fixed the Docker auth issue using the Read tool",
        id="hit",
        score=21.0,
        context=MessageContext(tools_used=["Read"]),
    )
    vetoed = make_message("Nothing about the topic at all in this reply", id="miss", score=0.0)

    top = select_top_results([vetoed, hit], "docker auth", analysis, limit=5, now=NOW)
    assert [m.id for m in top] == ["hit", "miss"]
    assert top[0].final_score == 84.0
    assert top[1].final_score == 0
    assert len(select_top_results([vetoed, hit], "docker auth", analysis, limit=1, now=NOW)) == 1


def test_passes_quality_gate():
    body = "A long enough assistant answer about the auth flow"
    assert passes_quality_gate(make_message(body, final=2.0))
    assert not passes_quality_gate(make_message(body, final=1.0))
    assert not passes_quality_gate(make_message("too short", final=9.0))


def test_is_low_value():
    assert is_low_value("ok")
    assert is_low_value("Thanks.")
    assert is_low_value("<system-reminder>a reminder long enough to pass</system-reminder>")
    assert not is_low_value("This is a substantive answer about caching")


def test_is_noise_and_highly_relevant():
    analysis = analyze_query("docker auth")
    assert is_noise("short")
    assert is_noise("This session is being continued from a previous conversation")
    long_answer = "The Docker auth issue came from an expired registry token in the CI secrets store last night."
    assert not is_noise(long_answer)
    assert is_highly_relevant(make_message(long_answer, score=2.0), analysis)
    assert not is_highly_relevant(make_message(long_answer, score=0.2), analysis)


def test_prioritize_results_summaries_then_recent_near_ties():
    summary = make_message(
        "In summary, we migrated the auth service to Redis and fixed tests.",
        id="summary",
        score=2.0,
        timestamp=NOW - timedelta(days=2),
    )
    best = make_message("Answer with the highest score", id="best", score=10.0, timestamp=NOW - timedelta(days=1))
    newer = make_message("Answer that is slightly lower", id="newer", score=9.5, timestamp=NOW)

    result = prioritize_results([best, newer, summary], limit=3)
    assert [m.id for m in result] == ["summary", "newer", "best"]


def test_prioritize_results_dedups_on_prefix():
    a = make_message("Same   text here", id="a", score=3.0)
    b = make_message("Same text here", id="b", score=2.0)
    assert [m.id for m in prioritize_results([a, b], limit=5)] == ["a"]
